"""
Generation Orchestrator: turns one user query into a final answer.

Fast depth makes a single model call. Balanced and deep depth run the
multi-agent pipeline:

    history -> [search] -> brainstorm (N-way) -> refine (N-way)
            -> synthesize -> [critique -> one revision]

Fan-out stages are barriers: every parallel call must succeed before the
next stage starts. Any failure aborts the run and yields a single error
message instead of a partial answer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from ..llm.protocols import Content, GenerateOptions, GenerateResult, Part, Source, Tool
from .failures import friendly_message
from .models import GenerationDepth, GenerationDetails, Message
from .prompts import (
    CRITIC_SYSTEM_INSTRUCTION,
    CRITIQUE_FEEDBACK_TEMPLATE,
    CRITIQUE_TARGET_TEMPLATE,
    INITIAL_DRAFT_TEMPLATE,
    INITIAL_SYSTEM_INSTRUCTION,
    PERFECT_VERDICT,
    REFINED_DRAFT_TEMPLATE,
    REFINEMENT_SYSTEM_INSTRUCTION,
    REVISION_TASK,
    SYNTHESIZER_SYSTEM_INSTRUCTION,
    WEB_RESULTS_TEMPLATE,
    memory_context,
)
from .stages import BRAINSTORM, CRITIQUE, GENERATE, HISTORY, REFINE, SEARCH, SYNTHESIZE, StageTracker

if TYPE_CHECKING:
    from ..config.loader import GenerationConfig, PacingConfig
    from ..llm.protocols import ModelGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

CRITIQUE_TEMPERATURE = 0.1

ProgressCallback = Callable[[StageTracker], None]


@dataclass
class RunContext:
    """Per-run working state shared by the pipeline steps."""

    user_input: str
    attachments: list[Part]
    history: list[Content]
    prompt_text: str
    sources: list[Source] = field(default_factory=list)

    def contents(self, extra_text: str = "") -> list[Content]:
        """History followed by the working prompt (plus any extra text) and attachments."""
        prompt = Content.user(self.prompt_text + extra_text, *self.attachments)
        return [*self.history, prompt]


def is_perfect(critique: str) -> bool:
    return critique.strip().upper() == PERFECT_VERDICT


class GenerationOrchestrator:
    """
    Runs one generation for a captured settings snapshot.

    The settings are fixed for the lifetime of the orchestrator; the
    session builds a new one for every submission.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        settings: GenerationConfig,
        pacing: PacingConfig | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.gateway = gateway
        self.settings = settings
        self.history_delay = pacing.history_delay if pacing else 0.0
        self.min_stage_display = pacing.min_stage_display if pacing else 0.0
        self.on_progress = on_progress

    def build_tracker(self) -> StageTracker:
        return StageTracker.build(
            self.settings.research_mode,
            self.settings.depth,
            self.settings.self_correction,
            on_change=self.on_progress,
        )

    async def run(
        self,
        user_input: str,
        attachments: list[Part] | None = None,
        history: list[Content] | None = None,
        memories: list[str] | None = None,
        confirmed_search_query: str | None = None,
    ) -> Message:
        """
        Produce the model's reply to one submission.

        Args:
            user_input: The user's text
            attachments: Inline attachment parts sent with the prompt
            history: Prior conversation turns (text only)
            memories: Long-term memory entries, injected when enabled
            confirmed_search_query: Query confirmed through the search gate

        Returns:
            The final model Message, or an error Message if any step failed
        """
        prefix = memory_context(memories or []) if self.settings.long_term_memory else ""
        ctx = RunContext(
            user_input=user_input,
            attachments=list(attachments or []),
            history=list(history or []),
            prompt_text=prefix + user_input,
        )
        tracker = self.build_tracker()

        logger.info(
            f"Starting {self.settings.depth.value} run "
            f"(mode={self.settings.research_mode.value}, stages={tracker.names})"
        )
        try:
            if self.settings.depth == GenerationDepth.FAST:
                return await self._run_fast(ctx, tracker)
            return await self._run_multi_stage(ctx, tracker, confirmed_search_query)
        except Exception as e:
            logger.error(f"Generation run failed: {type(e).__name__}: {e}")
            return Message.error(friendly_message(e))

    # ------------------------------------------------------------------
    # Fast path
    # ------------------------------------------------------------------

    async def _run_fast(self, ctx: RunContext, tracker: StageTracker) -> Message:
        tools: list[Tool] = []
        if self.settings.code_interpreter:
            tools.append(Tool.CODE_EXECUTION)
        if self.settings.research_mode.searches:
            tools.append(Tool.WEB_SEARCH)

        options = GenerateOptions(
            temperature=self.settings.temperatures.synthesizer,
            tools=tuple(tools),
        )
        result = await self._run_stage(
            tracker,
            GENERATE.name,
            self.gateway.generate(self.settings.model, ctx.contents(), options),
        )
        return Message.model_reply(
            result.text,
            sources=result.sources,
            tool_outputs=result.tool_outputs,
        )

    # ------------------------------------------------------------------
    # Multi-stage path
    # ------------------------------------------------------------------

    async def _run_multi_stage(
        self,
        ctx: RunContext,
        tracker: StageTracker,
        confirmed_search_query: str | None,
    ) -> Message:
        await self._run_stage(tracker, HISTORY.name, asyncio.sleep(self.history_delay))

        if SEARCH.name in tracker.names:
            await self._run_stage(
                tracker, SEARCH.name, self._search(ctx, confirmed_search_query)
            )

        initial = await self._run_stage(tracker, BRAINSTORM.name, self._brainstorm(ctx))
        refined = await self._run_stage(tracker, REFINE.name, self._refine(ctx, initial))

        synthesis_text = "".join(
            REFINED_DRAFT_TEMPLATE.format(number=i + 1, draft=draft)
            for i, draft in enumerate(refined)
        )
        final = await self._run_stage(
            tracker, SYNTHESIZE.name, self._synthesize(ctx, synthesis_text)
        )

        if CRITIQUE.name in tracker.names:
            final = await self._run_stage(
                tracker, CRITIQUE.name, self._self_correct(ctx, synthesis_text, final)
            )

        logger.info(f"Run complete ({len(final.text)} chars, {len(ctx.sources)} sources)")
        return Message.model_reply(
            final.text,
            sources=ctx.sources,
            tool_outputs=final.tool_outputs,
            generation_details=GenerationDetails(initial=initial, refined=refined),
        )

    async def _search(self, ctx: RunContext, confirmed_query: str | None) -> None:
        query = confirmed_query if confirmed_query is not None else ctx.prompt_text
        logger.info(f"Searching the web for: {query[:80]}")

        result = await self.gateway.generate(
            self.settings.model,
            query,
            GenerateOptions(tools=(Tool.WEB_SEARCH,)),
        )
        ctx.prompt_text += WEB_RESULTS_TEMPLATE.format(results=result.text)
        ctx.sources = list(result.sources)

    async def _brainstorm(self, ctx: RunContext) -> list[str]:
        temperatures = self.settings.temperatures
        contents = ctx.contents()
        results = await self._gather_all(
            self.gateway.generate(
                self.settings.model,
                contents,
                GenerateOptions(
                    system_instruction=INITIAL_SYSTEM_INSTRUCTION,
                    temperature=temperatures.for_agent(i),
                ),
            )
            for i in range(self.settings.depth.agent_count)
        )
        return [r.text for r in results]

    async def _refine(self, ctx: RunContext, drafts: list[str]) -> list[str]:
        options = GenerateOptions(
            system_instruction=REFINEMENT_SYSTEM_INSTRUCTION,
            temperature=self.settings.temperatures.refinement,
        )
        results = await self._gather_all(
            self.gateway.generate(
                self.settings.model,
                ctx.contents(INITIAL_DRAFT_TEMPLATE.format(draft=draft)),
                options,
            )
            for draft in drafts
        )
        return [r.text for r in results]

    def _synthesis_options(self) -> GenerateOptions:
        tools = (Tool.CODE_EXECUTION,) if self.settings.code_interpreter else ()
        return GenerateOptions(
            system_instruction=SYNTHESIZER_SYSTEM_INSTRUCTION,
            temperature=self.settings.temperatures.synthesizer,
            tools=tools,
        )

    async def _synthesize(self, ctx: RunContext, drafts_text: str) -> GenerateResult:
        return await self.gateway.generate(
            self.settings.model,
            ctx.contents(drafts_text),
            self._synthesis_options(),
        )

    async def _self_correct(
        self,
        ctx: RunContext,
        drafts_text: str,
        provisional: GenerateResult,
    ) -> GenerateResult:
        """Critique the provisional answer; revise it at most once."""
        critique = await self.gateway.generate(
            self.settings.auxiliary_model,
            [
                Content.user(
                    ctx.prompt_text + CRITIQUE_TARGET_TEMPLATE.format(answer=provisional.text),
                    *ctx.attachments,
                )
            ],
            GenerateOptions(
                system_instruction=CRITIC_SYSTEM_INSTRUCTION,
                temperature=CRITIQUE_TEMPERATURE,
            ),
        )
        if is_perfect(critique.text):
            logger.info("Critique verdict: PERFECT")
            return provisional

        logger.info("Critique found issues, revising the answer")
        revision = (
            drafts_text
            + CRITIQUE_FEEDBACK_TEMPLATE.format(critique=critique.text)
            + REVISION_TASK
        )
        return await self.gateway.generate(
            self.settings.model,
            ctx.contents(revision),
            self._synthesis_options(),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_stage(self, tracker: StageTracker, name: str, work: Awaitable[T]) -> T:
        """Run ``work`` as stage ``name``, holding it active for the display floor."""
        index = tracker.index_of(name)
        tracker.advance(index)

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await work

        remaining = self.min_stage_display - (loop.time() - started)
        if remaining > 0:
            await asyncio.sleep(remaining)
        tracker.complete(index)
        return result

    @staticmethod
    async def _gather_all(calls) -> list[GenerateResult]:
        """Barrier over parallel calls; the first failure cancels the rest."""
        tasks = [asyncio.ensure_future(call) for call in calls]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
