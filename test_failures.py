"""
Failure Classification Tests

Tests for mapping run failures onto user-facing messages.
"""

from chorus.llm.errors import (
    AuthenticationError,
    DeadlineExceededError,
    GatewayError,
    NetworkError,
    ResponseParseError,
    SafetyBlockedError,
)
from chorus.orchestration.failures import (
    FRIENDLY_MESSAGES,
    SEARCH_FAILURE_MESSAGE,
    FailureKind,
    classify_failure,
    friendly_message,
    search_failure_message,
)


def test_typed_errors():
    """Typed gateway errors map directly to their kind."""
    print("=" * 60)
    print("TEST 1: Typed errors")
    print("=" * 60)

    cases = [
        (AuthenticationError("bad key", status=401), FailureKind.AUTH),
        (DeadlineExceededError("timed out"), FailureKind.DEADLINE),
        (SafetyBlockedError("blocked"), FailureKind.SAFETY),
        (NetworkError("connection refused"), FailureKind.GENERIC),
        (ResponseParseError("bad json"), FailureKind.GENERIC),
    ]
    for exc, expected in cases:
        kind = classify_failure(exc)
        print(f"  {type(exc).__name__:24s} -> {kind.value}")
        assert kind == expected

    print("\n[PASS] Typed errors classified")


def test_message_heuristics():
    assert classify_failure(RuntimeError("API key not valid. Please pass a valid API key.")) == FailureKind.AUTH
    assert classify_failure(GatewayError("504 Deadline Exceeded")) == FailureKind.DEADLINE
    assert classify_failure(ValueError("Candidate blocked: finish_reason=SAFETY")) == FailureKind.SAFETY
    assert classify_failure(KeyError("anything else")) == FailureKind.GENERIC
    print("[PASS] Untyped errors classified from their message")


def test_friendly_messages():
    assert friendly_message(DeadlineExceededError("x")) == FRIENDLY_MESSAGES[FailureKind.DEADLINE]
    assert "administrator" in FRIENDLY_MESSAGES[FailureKind.AUTH]
    assert "modify" in FRIENDLY_MESSAGES[FailureKind.SAFETY]
    assert set(FRIENDLY_MESSAGES) == set(FailureKind)


def test_search_failure_message():
    assert search_failure_message(ResponseParseError("bad json")) == SEARCH_FAILURE_MESSAGE
    assert search_failure_message(NetworkError("down")) == SEARCH_FAILURE_MESSAGE
    assert search_failure_message(SafetyBlockedError("x")) == FRIENDLY_MESSAGES[FailureKind.SAFETY]


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("FAILURE CLASSIFICATION TESTS")
    print("=" * 60)

    test_typed_errors()
    test_message_heuristics()
    test_friendly_messages()
    test_search_failure_message()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
