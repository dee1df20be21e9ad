"""
Chat session: the control surface a front-end drives.

A session owns the conversation list, the long-term memories, the pending
search confirmation and the latest follow-up suggestions. Only one run may
be in flight at a time; submissions made while busy are rejected.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from ..llm.protocols import Content, ContentRole, Part
from .enrichment import EnrichmentDispatcher, admit_memory
from .failures import search_failure_message
from .models import Conversation, Message, SearchConfirmation, SearchProposal
from .orchestrator import GenerationOrchestrator, ProgressCallback
from .prompt_refiner import PromptRefiner
from .search_gate import SearchGate
from ..storage.store import DraftAutosaver

if TYPE_CHECKING:
    from ..config.loader import EnrichmentConfig, GenerationConfig, PacingConfig, SessionConfig
    from ..llm.protocols import ModelGateway
    from ..storage.store import ChatStore
    from .models import RefinedPrompt

logger = logging.getLogger(__name__)

NEW_CHAT_TITLE = "New Chat"

# Toggles that survive restarts
PERSISTED_PREFERENCES = ("long_term_memory", "self_correction", "code_interpreter")


class SessionError(Exception):
    """Base class for control-surface misuse."""


class SessionBusyError(SessionError):
    """A run or search confirmation is already in progress."""


class EmptySubmissionError(SessionError):
    """Nothing to send: no text and no attachments."""


class NoPendingSearchError(SessionError):
    """Confirm or cancel was called with no search awaiting confirmation."""


def make_title(text: str, max_chars: int = 40) -> str:
    """Conversation title from the first user message."""
    text = text.strip()
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def history_window(conversation: Conversation, max_messages: int = 10) -> list[Content]:
    """Text-only history from the last ``max_messages`` messages."""
    window = conversation.messages[-max_messages:] if max_messages > 0 else []
    contents = [m.to_history_content() for m in window]
    return [c for c in contents if c is not None]


class ChatSession:
    """
    Coordinates submissions, search confirmation, generation and enrichment.

    Example:
        session = ChatSession(gateway, settings, store)
        outcome = await session.submit("Plan a trip to Kyoto")
        if isinstance(outcome, SearchConfirmation):
            outcome = await session.confirm_search()
    """

    def __init__(
        self,
        gateway: ModelGateway,
        settings: GenerationConfig,
        store: ChatStore,
        enrichment: EnrichmentConfig | None = None,
        session_config: SessionConfig | None = None,
        pacing: PacingConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_suggestions: Callable[[list[str]], None] | None = None,
    ):
        from ..config.loader import EnrichmentConfig, SessionConfig

        self.gateway = gateway
        self.store = store
        self.enrichment_config = enrichment or EnrichmentConfig()
        self.session_config = session_config or SessionConfig()
        self.pacing = pacing
        self.on_progress = on_progress
        self.on_suggestions = on_suggestions

        self.settings = settings.model_copy(update=store.load_preferences())
        self.dispatcher = EnrichmentDispatcher(
            gateway, self.settings.auxiliary_model, self.enrichment_config
        )
        self.drafts = DraftAutosaver(store, debounce=self.session_config.draft_debounce)

        self.conversations: list[Conversation] = store.load_conversations()
        self.memories: list[str] = store.load_memories()
        self.suggestions: list[str] = []
        self.pending_search: SearchConfirmation | None = None
        self.busy = False

        last_id = store.load_last_conversation_id()
        if self.conversations:
            ids = [c.id for c in self.conversations]
            self.current_id = last_id if last_id in ids else ids[0]
        else:
            self.current_id = self.new_conversation().id

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    @property
    def current(self) -> Conversation:
        return self.get_conversation(self.current_id)

    def get_conversation(self, conversation_id: str) -> Conversation:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        raise KeyError(f"Unknown conversation: {conversation_id}")

    def new_conversation(self) -> Conversation:
        """Start an empty conversation and make it current."""
        if self.busy:
            raise SessionBusyError("Cannot start a new chat while a run is in progress")
        conversation = Conversation(title=NEW_CHAT_TITLE)
        self.conversations = [conversation, *self.conversations]
        self._select(conversation.id)
        self.store.save_conversations(self.conversations)
        return conversation

    def select_conversation(self, conversation_id: str) -> Conversation:
        if self.busy:
            raise SessionBusyError("Cannot switch chats while a run is in progress")
        conversation = self.get_conversation(conversation_id)
        self._select(conversation.id)
        return conversation

    def rename_conversation(self, conversation_id: str, title: str) -> None:
        """Rename a conversation; blank titles are ignored."""
        title = title.strip()
        if not title:
            return
        self._replace(self.get_conversation(conversation_id).with_title(title))

    def history(self) -> list[Content]:
        return history_window(self.current, self.session_config.max_history_messages)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        text: str,
        attachments: list[Part] | None = None,
        attachment_names: list[str] | None = None,
    ) -> Message | SearchConfirmation:
        """
        Submit user input.

        Args:
            text: The user's text
            attachments: Inline attachment parts
            attachment_names: Display names of the attachments

        Returns:
            The appended model Message (possibly an error message), or a
            SearchConfirmation when the run waits for search confirmation

        Raises:
            SessionBusyError: If a run or confirmation is already pending
            EmptySubmissionError: If there is neither text nor attachments
        """
        if self.busy or self.pending_search is not None:
            raise SessionBusyError("A run is already in progress")
        attachments = list(attachments or [])
        text = text.strip()
        if not text and not attachments:
            raise EmptySubmissionError("Nothing to submit")

        self.busy = True
        settings = self.settings
        conversation = self.current
        self._clear_suggestions()
        self.drafts.clear(conversation.id)

        history = history_window(conversation, self.session_config.max_history_messages)
        parts = ([Part.from_text(text)] if text else []) + attachments
        user_message = Message(
            role=ContentRole.USER,
            parts=parts,
            attachment_names=list(attachment_names or []),
        )
        conversation = conversation.with_message(user_message)
        if conversation.title == NEW_CHAT_TITLE and text:
            conversation = conversation.with_title(
                make_title(text, self.session_config.title_max_chars)
            )
        self._replace(conversation)

        if not settings.uses_search_gate:
            return await self._generate(text, attachments, history, settings, conversation.id)

        try:
            gate = SearchGate(self.gateway, settings.auxiliary_model)
            proposal: SearchProposal = await gate.propose_query(text)
        except Exception as e:
            logger.error(f"Search proposal failed: {type(e).__name__}: {e}")
            error = Message.error(search_failure_message(e))
            self._append(conversation.id, error)
            self.busy = False
            return error

        self.pending_search = SearchConfirmation(
            original_input=text,
            proposal=proposal,
            attachments=attachments,
            history=history,
            settings=settings,
            conversation_id=conversation.id,
        )
        self.busy = False
        return self.pending_search

    async def confirm_search(self, edited_query: str | None = None) -> Message:
        """Resume the paused run with the (possibly edited) search query."""
        pending = self._take_pending_search()
        query = (edited_query or "").strip() or pending.proposal.search_query
        logger.info(f"Search confirmed: {query}")
        self.busy = True
        return await self._generate(
            pending.original_input,
            pending.attachments,
            pending.history,
            pending.settings,
            pending.conversation_id,
            confirmed_search_query=query,
        )

    def cancel_search(self) -> None:
        """Abort the paused run without appending anything."""
        self._take_pending_search()
        self.busy = False
        logger.info("Search cancelled")

    async def select_suggestion(self, text: str) -> Message | SearchConfirmation:
        return await self.submit(text)

    def input_changed(self, text: str) -> None:
        """Typing clears suggestions and autosaves the draft."""
        self._clear_suggestions()
        self.drafts.update(self.current_id, text)

    def draft(self) -> str:
        return self.store.load_draft(self.current_id)

    async def refine_prompt(self, text: str) -> RefinedPrompt:
        refiner = PromptRefiner(self.gateway, self.settings.auxiliary_model)
        return await refiner.refine(text)

    async def drain(self) -> None:
        """Wait for background enrichment to finish."""
        await self.dispatcher.drain()

    def close(self) -> None:
        self.drafts.flush()

    async def _generate(
        self,
        text: str,
        attachments: list[Part],
        history: list[Content],
        settings: GenerationConfig,
        conversation_id: str,
        confirmed_search_query: str | None = None,
    ) -> Message:
        try:
            orchestrator = GenerationOrchestrator(
                self.gateway, settings, self.pacing, on_progress=self.on_progress
            )
            reply = await orchestrator.run(
                text,
                attachments=attachments,
                history=history,
                memories=list(self.memories),
                confirmed_search_query=confirmed_search_query,
            )
            self._append(conversation_id, reply)
        finally:
            self.busy = False

        if not reply.is_error and reply.text.strip():
            self.dispatcher.dispatch(
                text,
                reply.text,
                on_memory=self._admit_memory,
                on_suggestions=self._set_suggestions,
                extract_memory=settings.long_term_memory,
            )
        return reply

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    def add_memory(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        self._set_memories([text, *[m for m in self.memories if m != text]])

    def delete_memory(self, index: int) -> str:
        removed = self.memories[index]
        self._set_memories(self.memories[:index] + self.memories[index + 1 :])
        return removed

    def clear_memories(self) -> None:
        self._set_memories([])

    def _admit_memory(self, candidate: str) -> None:
        admitted = admit_memory(
            self.memories,
            candidate,
            max_memories=self.enrichment_config.max_memories,
            min_length=self.enrichment_config.min_memory_length,
        )
        if admitted != self.memories:
            logger.info(f"Stored memory: {candidate.strip()}")
            self._set_memories(admitted)

    def _set_memories(self, memories: list[str]) -> None:
        self.memories = memories
        self.store.save_memories(memories)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes) -> GenerationConfig:
        """Replace the settings snapshot used by future submissions."""
        self.settings = self.settings.model_copy(update=changes)
        preferences = {
            name: getattr(self.settings, name) for name in PERSISTED_PREFERENCES
        }
        self.store.save_preferences(preferences)
        return self.settings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take_pending_search(self) -> SearchConfirmation:
        if self.pending_search is None:
            raise NoPendingSearchError("No search is awaiting confirmation")
        pending, self.pending_search = self.pending_search, None
        return pending

    def _set_suggestions(self, suggestions: list[str]) -> None:
        self.suggestions = suggestions
        if self.on_suggestions is not None:
            self.on_suggestions(suggestions)

    def _clear_suggestions(self) -> None:
        self.suggestions = []

    def _select(self, conversation_id: str) -> None:
        self.current_id = conversation_id
        self.store.save_last_conversation_id(conversation_id)

    def _append(self, conversation_id: str, message: Message) -> None:
        self._replace(self.get_conversation(conversation_id).with_message(message))

    def _replace(self, conversation: Conversation) -> None:
        self.conversations = [
            conversation if c.id == conversation.id else c for c in self.conversations
        ]
        self.store.save_conversations(self.conversations)
