"""Persistence for conversations, long-term memories, drafts and preferences."""

from __future__ import annotations

import asyncio
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import TypeAdapter

if TYPE_CHECKING:
    from ..orchestration.models import Conversation

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _conversation_list() -> TypeAdapter:
    from ..orchestration.models import Conversation

    return TypeAdapter(list[Conversation])


@runtime_checkable
class ChatStore(Protocol):
    """Protocol for chat persistence backends.

    Collections are always read and written as whole values.
    """

    def load_conversations(self) -> list[Conversation]: ...

    def save_conversations(self, conversations: list[Conversation]) -> None: ...

    def load_memories(self) -> list[str]: ...

    def save_memories(self, memories: list[str]) -> None: ...

    def load_draft(self, conversation_id: str) -> str: ...

    def save_draft(self, conversation_id: str, text: str) -> None: ...

    def clear_draft(self, conversation_id: str) -> None: ...

    def load_last_conversation_id(self) -> str | None: ...

    def save_last_conversation_id(self, conversation_id: str) -> None: ...

    def load_preferences(self) -> dict[str, bool]: ...

    def save_preferences(self, preferences: dict[str, bool]) -> None: ...


class InMemoryChatStore:
    """Chat store that keeps everything in process memory."""

    def __init__(self):
        self._conversations: list[Conversation] = []
        self._memories: list[str] = []
        self._drafts: dict[str, str] = {}
        self._last_conversation_id: str | None = None
        self._preferences: dict[str, bool] = {}

    def load_conversations(self) -> list[Conversation]:
        return list(self._conversations)

    def save_conversations(self, conversations: list[Conversation]) -> None:
        self._conversations = list(conversations)

    def load_memories(self) -> list[str]:
        return list(self._memories)

    def save_memories(self, memories: list[str]) -> None:
        self._memories = list(memories)

    def load_draft(self, conversation_id: str) -> str:
        return self._drafts.get(conversation_id, "")

    def save_draft(self, conversation_id: str, text: str) -> None:
        self._drafts[conversation_id] = text

    def clear_draft(self, conversation_id: str) -> None:
        self._drafts.pop(conversation_id, None)

    def load_last_conversation_id(self) -> str | None:
        return self._last_conversation_id

    def save_last_conversation_id(self, conversation_id: str) -> None:
        self._last_conversation_id = conversation_id

    def load_preferences(self) -> dict[str, bool]:
        return dict(self._preferences)

    def save_preferences(self, preferences: dict[str, bool]) -> None:
        self._preferences = dict(preferences)


class JsonChatStore:
    """
    Chat store backed by JSON files in a data directory.

    Layout:
    - conversations.json: list of conversations with their messages
    - memories.json: list of memory strings, most recent first
    - drafts.json: conversation id -> unsent draft text
    - state.json: last selected conversation and preference toggles
    """

    def __init__(self, path: Path):
        """
        Initialize the store.

        Args:
            path: Data directory; created on first write
        """
        self.path = Path(path).expanduser()

    # Conversations

    def load_conversations(self) -> list[Conversation]:
        raw = self._read("conversations.json", [])
        try:
            return _conversation_list().validate_python(raw)
        except ValueError as e:
            logger.error(f"Ignoring unreadable conversations file: {e}")
            return []

    def save_conversations(self, conversations: list[Conversation]) -> None:
        self._write("conversations.json", _conversation_list().dump_python(conversations, mode="json"))

    # Memories

    def load_memories(self) -> list[str]:
        raw = self._read("memories.json", [])
        return [m for m in raw if isinstance(m, str)] if isinstance(raw, list) else []

    def save_memories(self, memories: list[str]) -> None:
        self._write("memories.json", list(memories))

    # Drafts

    def load_draft(self, conversation_id: str) -> str:
        draft = self._read_dict("drafts.json").get(conversation_id, "")
        return draft if isinstance(draft, str) else ""

    def save_draft(self, conversation_id: str, text: str) -> None:
        drafts = self._read_dict("drafts.json")
        drafts[conversation_id] = text
        self._write("drafts.json", drafts)

    def clear_draft(self, conversation_id: str) -> None:
        drafts = self._read_dict("drafts.json")
        if drafts.pop(conversation_id, None) is not None:
            self._write("drafts.json", drafts)

    # Session state

    def load_last_conversation_id(self) -> str | None:
        last_id = self._read_dict("state.json").get("last_conversation_id")
        return last_id if isinstance(last_id, str) else None

    def save_last_conversation_id(self, conversation_id: str) -> None:
        state = self._read_dict("state.json")
        state["last_conversation_id"] = conversation_id
        self._write("state.json", state)

    def load_preferences(self) -> dict[str, bool]:
        preferences = self._read_dict("state.json").get("preferences", {})
        if not isinstance(preferences, dict):
            return {}
        return {k: v for k, v in preferences.items() if isinstance(v, bool)}

    def save_preferences(self, preferences: dict[str, bool]) -> None:
        state = self._read_dict("state.json")
        state["preferences"] = dict(preferences)
        self._write("state.json", state)

    def _read(self, name: str, default):
        file_path = self.path / name
        if not file_path.exists():
            return default
        try:
            with open(file_path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read {file_path}: {e}")
            return default

    def _read_dict(self, name: str) -> dict:
        """Read a JSON object file; any other shape loads as empty."""
        data = self._read(name, {})
        if not isinstance(data, dict):
            logger.error(f"Ignoring {self.path / name}: expected a JSON object")
            return {}
        return data

    def _write(self, name: str, data) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        file_path = self.path / name
        tmp_path = file_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        tmp_path.replace(file_path)
        logger.debug(f"Persisted {file_path}")


class DraftAutosaver:
    """Debounces draft writes so only the last edit in a burst is persisted."""

    def __init__(self, store: ChatStore, debounce: float = 0.5):
        self.store = store
        self.debounce = debounce
        self._pending: dict[str, asyncio.Task] = {}
        self._latest: dict[str, str] = {}

    def update(self, conversation_id: str, text: str) -> None:
        """Schedule a save of ``text``, replacing any save not yet written."""
        self._cancel(conversation_id)
        self._latest[conversation_id] = text
        self._pending[conversation_id] = asyncio.create_task(
            self._save_later(conversation_id)
        )

    def flush(self) -> None:
        """Write every pending draft immediately."""
        for conversation_id in list(self._pending):
            self._cancel(conversation_id)
            self.store.save_draft(conversation_id, self._latest.pop(conversation_id))

    def clear(self, conversation_id: str) -> None:
        """Drop any pending save and remove the stored draft."""
        self._cancel(conversation_id)
        self._latest.pop(conversation_id, None)
        self.store.clear_draft(conversation_id)

    async def _save_later(self, conversation_id: str) -> None:
        await asyncio.sleep(self.debounce)
        self._pending.pop(conversation_id, None)
        self.store.save_draft(conversation_id, self._latest.pop(conversation_id))

    def _cancel(self, conversation_id: str) -> None:
        task = self._pending.pop(conversation_id, None)
        if task is not None:
            task.cancel()
