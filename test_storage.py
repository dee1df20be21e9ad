"""
Storage Tests

Tests for JSON and in-memory chat stores and the draft autosaver.
"""

import asyncio
import tempfile
from pathlib import Path

from chorus.llm.protocols import ContentRole, InlineData, Part, Source
from chorus.orchestration.models import Conversation, GenerationDetails, Message
from chorus.storage import ChatStore, DraftAutosaver, InMemoryChatStore, JsonChatStore


def _conversation() -> Conversation:
    image = Part(inline_data=InlineData.from_bytes("image/png", b"\x89PNG\r\n"))
    return (
        Conversation(title="Kyoto")
        .with_message(Message(role=ContentRole.USER, parts=[Part.from_text("Plan a trip"), image]))
        .with_message(
            Message.model_reply(
                "Day 1: temples",
                sources=[Source(uri="https://example.com", title="Guide")],
                generation_details=GenerationDetails(initial=["a", "b"], refined=["c", "d"]),
            )
        )
    )


def test_json_store_roundtrip(tmp_path: Path):
    """Conversations, memories, drafts and state survive a reload."""
    print("=" * 60)
    print("TEST 1: JSON store")
    print("=" * 60)

    store = JsonChatStore(tmp_path / "data")
    conversation = _conversation()

    store.save_conversations([conversation])
    store.save_memories(["The user likes temples."])
    store.save_draft(conversation.id, "half-typed")
    store.save_last_conversation_id(conversation.id)
    store.save_preferences({"self_correction": False})

    reloaded = JsonChatStore(tmp_path / "data")
    loaded = reloaded.load_conversations()
    print(f"\nFiles: {sorted(p.name for p in (tmp_path / 'data').iterdir())}")

    assert loaded == [conversation]
    assert loaded[0].messages[0].parts[1].inline_data.to_bytes() == b"\x89PNG\r\n"
    assert reloaded.load_memories() == ["The user likes temples."]
    assert reloaded.load_draft(conversation.id) == "half-typed"
    assert reloaded.load_last_conversation_id() == conversation.id
    assert reloaded.load_preferences() == {"self_correction": False}

    reloaded.clear_draft(conversation.id)
    assert reloaded.load_draft(conversation.id) == ""
    print("\n[PASS] JSON store round trip")


def test_json_store_empty_and_corrupt(tmp_path: Path):
    store = JsonChatStore(tmp_path)
    assert store.load_conversations() == []
    assert store.load_memories() == []
    assert store.load_last_conversation_id() is None
    assert store.load_preferences() == {}

    (tmp_path / "conversations.json").write_text("{ not json")
    (tmp_path / "memories.json").write_text('{"not": "a list"}')
    assert store.load_conversations() == []
    assert store.load_memories() == []

    # Valid JSON of the wrong shape
    (tmp_path / "drafts.json").write_text('["x"]')
    (tmp_path / "state.json").write_text('["x"]')
    assert store.load_draft("c") == ""
    assert store.load_last_conversation_id() is None
    assert store.load_preferences() == {}

    (tmp_path / "state.json").write_text('{"last_conversation_id": 7, "preferences": ["x"]}')
    assert store.load_last_conversation_id() is None
    assert store.load_preferences() == {}

    # Not UTF-8
    (tmp_path / "state.json").write_bytes(b"\xff\xfe{\x00")
    (tmp_path / "conversations.json").write_bytes(b"\xff\xfe[\x00")
    assert store.load_preferences() == {}
    assert store.load_conversations() == []

    # Writes recover the files
    store.save_draft("c", "Grüße")
    store.save_preferences({"self_correction": False})
    assert store.load_draft("c") == "Grüße"
    assert store.load_preferences() == {"self_correction": False}
    print("[PASS] Missing or corrupt files load as empty")


def test_session_starts_with_corrupt_state(tmp_path: Path):
    from chorus.config.factory import MockGateway
    from chorus.config.loader import GenerationConfig
    from chorus.orchestration.session import ChatSession

    (tmp_path / "state.json").write_text("[1, 2, 3]")
    (tmp_path / "drafts.json").write_text('"oops"')

    session = ChatSession(MockGateway(), GenerationConfig(), JsonChatStore(tmp_path))
    assert session.current.title == "New Chat"
    assert session.draft() == ""


def test_in_memory_store_returns_copies():
    store = InMemoryChatStore()
    memories = ["one fact here"]
    store.save_memories(memories)
    memories.append("mutated")
    assert store.load_memories() == ["one fact here"]


def test_stores_satisfy_protocol():
    assert isinstance(InMemoryChatStore(), ChatStore)
    assert isinstance(JsonChatStore(Path(tempfile.gettempdir())), ChatStore)


async def test_draft_autosaver():
    """Only the last edit in a burst is written; clear cancels pending saves."""
    print("\n" + "=" * 60)
    print("TEST 2: Draft autosaver")
    print("=" * 60)

    writes = []

    class RecordingStore(InMemoryChatStore):
        def save_draft(self, conversation_id, text):
            writes.append(text)
            super().save_draft(conversation_id, text)

    store = RecordingStore()
    autosaver = DraftAutosaver(store, debounce=0.02)

    for text in ("H", "He", "Hel", "Hello"):
        autosaver.update("c1", text)
    await asyncio.sleep(0.06)
    assert writes == ["Hello"]

    autosaver.update("c1", "Hello, wor")
    autosaver.clear("c1")
    await asyncio.sleep(0.06)
    assert writes == ["Hello"]
    assert store.load_draft("c1") == ""

    autosaver.update("c2", "pending")
    autosaver.flush()
    assert store.load_draft("c2") == "pending"
    print("\n[PASS] Debounce, clear and flush behave")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("STORAGE TESTS")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        test_json_store_roundtrip(Path(tmp))
    with tempfile.TemporaryDirectory() as tmp:
        test_json_store_empty_and_corrupt(Path(tmp))
    with tempfile.TemporaryDirectory() as tmp:
        test_session_starts_with_corrupt_state(Path(tmp))
    test_in_memory_store_returns_copies()
    test_stores_satisfy_protocol()
    asyncio.run(test_draft_autosaver())

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
