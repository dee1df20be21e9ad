"""Chat persistence backends."""

from .store import ChatStore, DraftAutosaver, InMemoryChatStore, JsonChatStore

__all__ = ["ChatStore", "DraftAutosaver", "InMemoryChatStore", "JsonChatStore"]
