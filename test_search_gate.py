"""
Search Gate Tests

Tests for search query proposals and the confirm/cancel flow.
"""

import asyncio
import json

import pytest

from chorus.config.factory import MockGateway
from chorus.config.loader import GenerationConfig
from chorus.llm.errors import AuthenticationError, ResponseParseError
from chorus.llm.protocols import ContentRole, Tool
from chorus.orchestration.failures import FRIENDLY_MESSAGES, SEARCH_FAILURE_MESSAGE, FailureKind
from chorus.orchestration.models import GenerationDepth, Message, ResearchMode, SearchConfirmation
from chorus.orchestration.prompts import (
    INITIAL_SYSTEM_INSTRUCTION,
    SEARCH_REFINER_SYSTEM_INSTRUCTION,
)
from chorus.orchestration.search_gate import SearchGate
from chorus.orchestration.session import ChatSession, NoPendingSearchError, SessionBusyError
from chorus.storage import InMemoryChatStore


def _session(gateway, **overrides) -> ChatSession:
    settings = {
        "model": "mock-main",
        "auxiliary_model": "mock-aux",
        "research_mode": ResearchMode.WEB,
        "depth": GenerationDepth.DEEP,
    }
    settings.update(overrides)
    return ChatSession(gateway, GenerationConfig(**settings), InMemoryChatStore())


def _search_calls(gateway):
    return [c for c in gateway.calls if Tool.WEB_SEARCH in c.options.tools]


async def test_propose_query():
    """The gate returns the refined query and clarifying questions."""
    print("=" * 60)
    print("TEST 1: propose_query")
    print("=" * 60)

    def responder(call):
        return json.dumps({
            "searchQuery": "  Kyoto travel itinerary  ",
            "questions": ["How many days?", "Which season?", "", "Budget?"],
        })

    gateway = MockGateway(responder)
    proposal = await SearchGate(gateway, "mock-aux").propose_query("Plan a trip to Kyoto")

    print(f"\nQuery: {proposal.search_query}")
    print(f"Questions: {proposal.questions}")

    assert proposal.search_query == "Kyoto travel itinerary"
    assert proposal.questions == ["How many days?", "Which season?", "Budget?"]

    call = gateway.calls[0]
    assert call.model == "mock-aux"
    assert call.system_instruction == SEARCH_REFINER_SYSTEM_INSTRUCTION
    assert call.options.response_schema is not None
    assert call.prompt == "Plan a trip to Kyoto"
    print("\n[PASS] Proposal parsed and cleaned")


async def test_questions_capped_at_five():
    questions = [f"Question {i}?" for i in range(8)]
    gateway = MockGateway(lambda call: json.dumps({"searchQuery": "q", "questions": questions}))
    proposal = await SearchGate(gateway, "mock-aux").propose_query("anything")
    assert proposal.questions == questions[:5]


async def test_fenced_json_accepted():
    payload = '```json\n{"searchQuery": "python asyncio", "questions": []}\n```'
    gateway = MockGateway(lambda call: payload)
    proposal = await SearchGate(gateway, "mock-aux").propose_query("asyncio docs")
    assert proposal.search_query == "python asyncio"


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        json.dumps(["a", "list"]),
        json.dumps({"questions": ["missing query"]}),
        json.dumps({"searchQuery": "", "questions": []}),
        json.dumps({"searchQuery": "ok", "questions": "not a list"}),
    ],
)
async def test_malformed_proposal_rejected(payload):
    gateway = MockGateway(lambda call: payload)
    with pytest.raises(ResponseParseError):
        await SearchGate(gateway, "mock-aux").propose_query("anything")


async def test_web_mode_pauses_for_confirmation():
    """Scenario B: web + deep with confirmation, unedited query."""
    print("\n" + "=" * 60)
    print("TEST 2: Confirmation flow")
    print("=" * 60)

    gateway = MockGateway()
    session = _session(gateway)

    outcome = await session.submit("Plan a trip to Kyoto")
    assert isinstance(outcome, SearchConfirmation)
    assert session.pending_search is outcome
    assert not session.busy
    assert len(gateway.calls) == 1
    print(f"\nProposed: {outcome.proposal.search_query}")

    reply = await session.confirm_search()
    assert isinstance(reply, Message)
    assert session.pending_search is None

    search = _search_calls(gateway)
    assert len(search) == 1
    assert search[0].prompt == outcome.proposal.search_query

    assert len(gateway.calls_with(INITIAL_SYSTEM_INSTRUCTION)) == 4
    assert len(reply.generation_details.initial) == 4
    assert len(reply.generation_details.refined) == 4

    messages = session.current.messages
    assert [m.role for m in messages] == [ContentRole.USER, ContentRole.MODEL]
    await session.drain()
    print("\n[PASS] Confirmed search runs the full pipeline")


async def test_edited_query_substituted():
    gateway = MockGateway()
    session = _session(gateway, depth=GenerationDepth.BALANCED)

    await session.submit("Plan a trip to Kyoto")
    await session.confirm_search("  Kyoto autumn foliage 2025 ")

    assert _search_calls(gateway)[0].prompt == "Kyoto autumn foliage 2025"
    await session.drain()


async def test_cancel_is_silent():
    gateway = MockGateway()
    session = _session(gateway)

    await session.submit("Plan a trip to Kyoto")
    session.cancel_search()

    assert session.pending_search is None
    assert not session.busy
    assert len(gateway.calls) == 1
    assert [m.role for m in session.current.messages] == [ContentRole.USER]

    with pytest.raises(NoPendingSearchError):
        session.cancel_search()
    with pytest.raises(NoPendingSearchError):
        await session.confirm_search()
    print("[PASS] Cancel appends nothing and leaves the session idle")


async def test_submit_while_confirmation_pending_rejected():
    session = _session(MockGateway())
    await session.submit("Plan a trip to Kyoto")
    with pytest.raises(SessionBusyError):
        await session.submit("Something else")


async def test_gate_failure_aborts_before_generation():
    gateway = MockGateway(lambda call: "definitely not json")
    session = _session(gateway)

    reply = await session.submit("Plan a trip to Kyoto")

    assert isinstance(reply, Message)
    assert reply.is_error
    assert reply.text == SEARCH_FAILURE_MESSAGE
    assert len(gateway.calls) == 1
    assert session.pending_search is None
    assert not session.busy
    await session.drain()
    assert len(gateway.calls) == 1
    print("[PASS] Search gate failure yields an error before any generation call")


async def test_gate_auth_failure_keeps_specific_message():
    gateway = MockGateway(lambda call: AuthenticationError("API key not valid"))
    reply = await _session(gateway).submit("Plan a trip to Kyoto")
    assert reply.text == FRIENDLY_MESSAGES[FailureKind.AUTH]


async def test_deep_mode_and_fast_depth_skip_gate():
    for overrides in (
        {"research_mode": ResearchMode.DEEP},
        {"research_mode": ResearchMode.WEB, "depth": GenerationDepth.FAST},
    ):
        gateway = MockGateway()
        session = _session(gateway, **overrides)
        outcome = await session.submit("Latest Python release")
        assert isinstance(outcome, Message)
        assert gateway.calls_with(SEARCH_REFINER_SYSTEM_INSTRUCTION) == []
        await session.drain()
    print("[PASS] Only web mode with a multi-agent depth asks for confirmation")


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("SEARCH GATE TESTS")
    print("=" * 60)

    asyncio.run(test_propose_query())
    asyncio.run(test_questions_capped_at_five())
    asyncio.run(test_fenced_json_accepted())
    asyncio.run(test_web_mode_pauses_for_confirmation())
    asyncio.run(test_edited_query_substituted())
    asyncio.run(test_cancel_is_silent())
    asyncio.run(test_submit_while_confirmation_pending_rejected())
    asyncio.run(test_gate_failure_aborts_before_generation())
    asyncio.run(test_gate_auth_failure_keeps_specific_message())
    asyncio.run(test_deep_mode_and_fast_depth_skip_gate())

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
