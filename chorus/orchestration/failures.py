"""Classification of run failures into user-facing messages."""

from enum import Enum

from ..llm.errors import (
    AuthenticationError,
    DeadlineExceededError,
    SafetyBlockedError,
)


class FailureKind(str, Enum):
    """Categories of run failure shown to the user."""

    AUTH = "auth"
    DEADLINE = "deadline"
    SAFETY = "safety"
    GENERIC = "generic"


FRIENDLY_MESSAGES: dict[FailureKind, str] = {
    FailureKind.AUTH: (
        "There is a problem with the API configuration. "
        "Please contact the administrator."
    ),
    FailureKind.DEADLINE: (
        "The request took too long to complete. "
        "Please try a shorter question or check your connection."
    ),
    FailureKind.SAFETY: (
        "The response was blocked for safety reasons. "
        "Please modify your question."
    ),
    FailureKind.GENERIC: "Sorry, an unexpected error occurred while generating the answer.",
}

SEARCH_FAILURE_MESSAGE = (
    "Sorry, there was an error refining your search. Please try again."
)


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception to a failure kind, typed errors first, then message text."""
    if isinstance(exc, AuthenticationError):
        return FailureKind.AUTH
    if isinstance(exc, DeadlineExceededError):
        return FailureKind.DEADLINE
    if isinstance(exc, SafetyBlockedError):
        return FailureKind.SAFETY

    message = str(exc)
    if "API key not valid" in message:
        return FailureKind.AUTH
    if "deadline" in message.lower():
        return FailureKind.DEADLINE
    if "SAFETY" in message:
        return FailureKind.SAFETY
    return FailureKind.GENERIC


def friendly_message(exc: BaseException) -> str:
    return FRIENDLY_MESSAGES[classify_failure(exc)]


def search_failure_message(exc: BaseException) -> str:
    """Message for a failed search proposal; specific kinds keep their own text."""
    kind = classify_failure(exc)
    if kind == FailureKind.GENERIC:
        return SEARCH_FAILURE_MESSAGE
    return FRIENDLY_MESSAGES[kind]
