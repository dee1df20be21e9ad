"""Model gateway integrations with protocol-based adapter pattern."""

from .protocols import (
    Content,
    ContentRole,
    GenerateOptions,
    GenerateResult,
    InlineData,
    ModelGateway,
    Part,
    Source,
    Tool,
    ToolOutput,
)
from .errors import (
    AuthenticationError,
    DeadlineExceededError,
    GatewayError,
    NetworkError,
    ResponseParseError,
    SafetyBlockedError,
)
from .adapters import AnthropicAdapter, GeminiAdapter, OpenRouterAdapter
from .completion import generate_json, generate_text, parse_json_text

__all__ = [
    # Protocols
    "ModelGateway",
    "Content",
    "ContentRole",
    "GenerateOptions",
    "GenerateResult",
    "InlineData",
    "Part",
    "Source",
    "Tool",
    "ToolOutput",
    # Errors
    "GatewayError",
    "AuthenticationError",
    "DeadlineExceededError",
    "NetworkError",
    "ResponseParseError",
    "SafetyBlockedError",
    # Adapters
    "GeminiAdapter",
    "OpenRouterAdapter",
    "AnthropicAdapter",
    # Convenience functions
    "generate_text",
    "generate_json",
    "parse_json_text",
]
