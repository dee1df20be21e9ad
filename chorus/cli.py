"""Command-line interface for the multi-agent chat."""

import asyncio
import logging
from typing import Annotated, Optional

import typer

from .attachments import AttachmentBatch, load_attachments
from .config.factory import create_gateway, create_session
from .config.loader import ProfileConfig, list_profiles, load_config
from .llm.errors import GatewayError
from .orchestration.models import (
    GenerationDepth,
    Message,
    ResearchMode,
    SearchConfirmation,
)
from .orchestration.session import ChatSession, SessionError
from .orchestration.stages import StageTracker

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="chorus",
    help="Multi-agent chat: brainstorm, refine, synthesize and self-critique answers.",
    add_completion=False,
)

ProfileOption = Annotated[
    Optional[str],
    typer.Option("--profile", "-p", help="Configuration profile (default: MODEL_PROFILE or 'default')"),
]
ModeOption = Annotated[
    Optional[ResearchMode],
    typer.Option("--mode", "-m", help="Research mode: offline, web or deep"),
]
DepthOption = Annotated[
    Optional[GenerationDepth],
    typer.Option("--depth", "-d", help="Generation depth: fast, balanced or deep"),
]
ModelOption = Annotated[
    Optional[str],
    typer.Option("--model", help="Main model identifier"),
]

CHAT_HELP = """Commands:
  /new             start a new chat
  /refine TEXT     suggest a better version of a prompt
  /attach PATH..   attach files to the next message
  /memories        list long-term memories
  /quit            leave
  :N               send suggestion number N"""

REFINE_FAILURE_MESSAGE = "Could not refine the question. Please try again."


def build_profile(
    profile: str | None,
    mode: ResearchMode | None,
    depth: GenerationDepth | None,
    model: str | None,
) -> ProfileConfig:
    """Load a profile and apply command-line overrides."""
    config = load_config(profile)
    overrides = {}
    if mode is not None:
        overrides["research_mode"] = mode
    if depth is not None:
        overrides["depth"] = depth
    if model is not None:
        overrides["model"] = model
    if overrides:
        config = config.model_copy(
            update={"generation": config.generation.model_copy(update=overrides)}
        )
    return config


def print_progress(tracker: StageTracker) -> None:
    stage = tracker.active_stage
    if stage is not None:
        percent = int(tracker.progress_ratio() * 100)
        typer.secho(f"  [{percent:3d}%] {stage.label}", fg=typer.colors.BRIGHT_BLACK, err=True)


def print_reply(message: Message) -> None:
    """Print a model reply with its sources and code-execution outputs."""
    typer.echo()
    if message.is_error:
        typer.secho(message.text, fg=typer.colors.RED)
        return

    typer.echo(message.text)

    for output in message.tool_outputs:
        typer.secho("\n--- Code executed ---", fg=typer.colors.CYAN)
        typer.echo(output.code)
        for part in output.result:
            if part.is_text:
                typer.echo(part.text)
            else:
                typer.echo(f"[{part.inline_data.mime_type} output]")

    if message.sources:
        typer.secho("\nSources:", fg=typer.colors.CYAN)
        for i, source in enumerate(message.sources, 1):
            typer.echo(f"  {i}. {source.title or source.uri} <{source.uri}>")

    if message.generation_details:
        count = len(message.generation_details.initial)
        typer.secho(f"\n({count} drafts brainstormed and refined)", fg=typer.colors.BRIGHT_BLACK)


def print_suggestions(suggestions: list[str]) -> None:
    if not suggestions:
        return
    typer.secho("\nSuggestions:", fg=typer.colors.CYAN)
    for i, suggestion in enumerate(suggestions, 1):
        typer.echo(f"  :{i} {suggestion}")


def ask_search_confirmation(confirmation: SearchConfirmation) -> str | None:
    """Show the proposed search; return the query to use, or None to cancel."""
    proposal = confirmation.proposal
    typer.secho(f"\nProposed search: {proposal.search_query}", fg=typer.colors.YELLOW)
    for question in proposal.questions:
        typer.echo(f"  ? {question}")
    if not typer.confirm("Run this search?", default=True):
        return None
    return typer.prompt("Search query", default=proposal.search_query)


async def resolve_outcome(
    session: ChatSession,
    outcome: Message | SearchConfirmation,
    auto_confirm: bool = False,
) -> Message | None:
    """Drive a pending search confirmation to a reply (None if cancelled)."""
    if isinstance(outcome, Message):
        return outcome

    if auto_confirm:
        return await session.confirm_search()

    query = await asyncio.to_thread(ask_search_confirmation, outcome)
    if query is None:
        session.cancel_search()
        typer.echo("Search cancelled.")
        return None
    return await session.confirm_search(query)


@app.command()
def chat(
    profile: ProfileOption = None,
    mode: ModeOption = None,
    depth: DepthOption = None,
    model: ModelOption = None,
):
    """
    Start an interactive chat.

    Examples:

        # Chat with the default profile
        chorus chat

        # Web research with a balanced team
        chorus chat --mode web --depth balanced
    """
    config = build_profile(profile, mode, depth, model)
    asyncio.run(_chat_async(config))


async def _chat_async(config: ProfileConfig):
    """Async implementation of chat."""
    async with create_gateway(config.gateway) as gateway:
        session = create_session(config, gateway, on_progress=print_progress)
        attachments = AttachmentBatch()

        settings = session.settings
        typer.secho(
            f"Chorus ({settings.depth.value} depth, {settings.research_mode.value} mode, "
            f"model {settings.model}). Type /help for commands.",
            fg=typer.colors.GREEN,
        )

        try:
            while True:
                line = (await asyncio.to_thread(input, "\nyou> ")).strip()
                if not line:
                    continue

                if line in ("/quit", "/exit"):
                    break
                elif line == "/help":
                    typer.echo(CHAT_HELP)
                    continue
                elif line == "/new":
                    session.new_conversation()
                    attachments = AttachmentBatch()
                    typer.echo("Started a new chat.")
                    continue
                elif line == "/memories":
                    _print_memories(session.memories)
                    continue
                elif line.startswith("/attach"):
                    attachments = _merge_batches(attachments, load_attachments(line.split()[1:]))
                    typer.echo(f"Attached: {', '.join(attachments.names) or 'nothing'}")
                    continue
                elif line.startswith("/refine"):
                    try:
                        refined = await session.refine_prompt(line[len("/refine"):].strip())
                    except ValueError:
                        typer.echo("Usage: /refine TEXT")
                        continue
                    except GatewayError as e:
                        logger.warning(f"Prompt refinement failed: {e}")
                        typer.secho(REFINE_FAILURE_MESSAGE, fg=typer.colors.RED, err=True)
                        continue
                    typer.echo(f"\n{refined.refined}")
                    typer.secho(refined.rationale, fg=typer.colors.BRIGHT_BLACK)
                    for question in refined.questions:
                        typer.echo(f"  ? {question}")
                    continue

                if line.startswith(":") and line[1:].isdigit():
                    index = int(line[1:]) - 1
                    if not 0 <= index < len(session.suggestions):
                        typer.echo("No such suggestion.")
                        continue
                    outcome = await session.select_suggestion(session.suggestions[index])
                else:
                    outcome = await session.submit(
                        line, attachments.parts, attachment_names=attachments.names
                    )
                    attachments = AttachmentBatch()

                reply = await resolve_outcome(session, outcome)
                if reply is None:
                    continue
                print_reply(reply)
                await session.drain()
                print_suggestions(session.suggestions)
        except (EOFError, KeyboardInterrupt):
            typer.echo()
        except SessionError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        finally:
            await session.drain()
            session.close()


def _merge_batches(first: AttachmentBatch, second: AttachmentBatch) -> AttachmentBatch:
    if second.notification:
        typer.secho(second.notification, fg=typer.colors.RED, err=True)
    return AttachmentBatch(
        parts=first.parts + second.parts,
        names=first.names + second.names,
    )


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Question to answer")],
    attach: Annotated[
        Optional[list[str]],
        typer.Option("--attach", "-a", help="Files to attach (can specify multiple)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Accept the proposed web search without asking"),
    ] = False,
    profile: ProfileOption = None,
    mode: ModeOption = None,
    depth: DepthOption = None,
    model: ModelOption = None,
):
    """
    Answer a single question and exit.

    Examples:

        chorus ask "What is 2+2?" --depth fast

        chorus ask "Plan a trip to Kyoto" --mode web --yes
    """
    config = build_profile(profile, mode, depth, model)
    batch = load_attachments(attach or [])
    if batch.notification:
        typer.secho(batch.notification, fg=typer.colors.RED, err=True)
    asyncio.run(_ask_async(config, question, batch, yes))


async def _ask_async(config: ProfileConfig, question: str, batch: AttachmentBatch, yes: bool):
    """Async implementation of ask."""
    async with create_gateway(config.gateway) as gateway:
        session = create_session(config, gateway, on_progress=print_progress)
        session.new_conversation()
        try:
            outcome = await session.submit(question, batch.parts, attachment_names=batch.names)
            reply = await resolve_outcome(session, outcome, auto_confirm=yes)
            if reply is not None:
                print_reply(reply)
            await session.drain()
        finally:
            session.close()

    if reply is None or reply.is_error:
        raise typer.Exit(1)


@app.command()
def memories(
    add: Annotated[
        Optional[str],
        typer.Option("--add", help="Remember a fact about yourself"),
    ] = None,
    delete: Annotated[
        Optional[int],
        typer.Option("--delete", help="Forget memory number N"),
    ] = None,
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Forget everything"),
    ] = False,
    profile: ProfileOption = None,
):
    """List or edit long-term memories."""
    from .config.factory import create_store

    config = load_config(profile)
    store = create_store(config.storage)
    current = store.load_memories()

    if clear:
        current = []
    if delete is not None:
        if not 1 <= delete <= len(current):
            typer.echo(f"Error: no memory number {delete}", err=True)
            raise typer.Exit(1)
        current = current[: delete - 1] + current[delete:]
    if add and add.strip():
        text = add.strip()
        current = [text, *[m for m in current if m != text]][: config.enrichment.max_memories]
    if clear or delete is not None or add:
        store.save_memories(current)

    _print_memories(current)


def _print_memories(entries: list[str]) -> None:
    if not entries:
        typer.echo("No memories stored.")
        return
    typer.echo("Long-term memories:\n")
    for i, memory in enumerate(entries, 1):
        typer.echo(f"  {i}. {memory}")


@app.command()
def profiles():
    """List available configuration profiles."""
    available = list_profiles()
    if not available:
        typer.echo("No configuration file found; using environment variables.")
        return

    typer.echo("Available profiles:\n")
    for name, profile in available.items():
        generation = profile.generation
        typer.echo(f"  {name}")
        typer.echo(f"    Backend: {profile.gateway.backend}")
        typer.echo(f"    Model: {generation.model} (auxiliary: {generation.auxiliary_model})")
        typer.echo(f"    Mode: {generation.research_mode.value} | Depth: {generation.depth.value}")
        typer.echo()


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
