"""Typed failures raised by model gateways."""


class GatewayError(Exception):
    """Base class for every failure surfaced by a model gateway."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(GatewayError):
    """The API credential is missing, invalid or not authorised."""


class DeadlineExceededError(GatewayError):
    """The request timed out in the transport or on the server."""


class SafetyBlockedError(GatewayError):
    """The prompt or the response was rejected by a content policy."""


class NetworkError(GatewayError):
    """The API could not be reached."""


class ResponseParseError(GatewayError):
    """A structured (JSON) response did not have the expected shape."""
