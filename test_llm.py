"""
Model Gateway Tests

Tests for the gateway data types, JSON helpers, error mapping and the
message conversion done by each adapter. No network calls are made.
"""

import asyncio
import json

import pytest
from pydantic import ValidationError

from chorus.config.factory import MockGateway
from chorus.llm import (
    AnthropicAdapter,
    Content,
    ContentRole,
    GeminiAdapter,
    GenerateOptions,
    InlineData,
    ModelGateway,
    OpenRouterAdapter,
    Part,
    generate_json,
    generate_text,
    parse_json_text,
)
from chorus.llm.adapters import _error_for_status, to_json_schema
from chorus.llm.errors import (
    AuthenticationError,
    DeadlineExceededError,
    GatewayError,
    ResponseParseError,
    SafetyBlockedError,
)
from chorus.llm.protocols import normalize_contents
from chorus.orchestration.prompts import SEARCH_PROPOSAL_SCHEMA


def _user_with_attachments() -> Content:
    return Content.user(
        "Describe these",
        Part(inline_data=InlineData.from_bytes("image/png", b"png-bytes")),
        Part(inline_data=InlineData.from_bytes("text/plain", b"plain text")),
        Part(inline_data=InlineData.from_bytes("application/pdf", b"%PDF")),
    )


def test_part_requires_exactly_one_payload():
    print("=" * 60)
    print("TEST 1: Gateway data types")
    print("=" * 60)

    with pytest.raises(ValidationError):
        Part()
    with pytest.raises(ValidationError):
        Part(text="x", inline_data=InlineData.from_bytes("image/png", b"x"))

    image = InlineData.from_bytes("image/png", b"\x00\x01")
    assert image.to_bytes() == b"\x00\x01"
    assert Part.from_text("hi").is_text
    print("\n[PASS] Parts carry exactly one payload")


def test_content_helpers():
    content = Content.user("hello", Part.from_text("world"))
    assert content.role == ContentRole.USER
    assert [p.text for p in content.parts] == ["hello", "world"]
    assert normalize_contents("prompt") == [Content.user("prompt")]


def test_temperature_range():
    GenerateOptions(temperature=0.0)
    GenerateOptions(temperature=1.0)
    with pytest.raises(ValidationError):
        GenerateOptions(temperature=1.5)


def test_parse_json_text():
    assert parse_json_text('{"a": 1}') == {"a": 1}
    assert parse_json_text('```json\n["x", "y"]\n```') == ["x", "y"]
    assert parse_json_text("```\n{}\n```") == {}
    assert parse_json_text('```json\n{"a": [1]}\n``` Hope this helps!') == {"a": [1]}
    assert parse_json_text('Here it is:\n```JSON\n["q"]\n```') == ["q"]
    with pytest.raises(ResponseParseError):
        parse_json_text("{broken")
    print("[PASS] JSON payloads parsed, fences tolerated")


async def test_generate_helpers():
    gateway = MockGateway()
    assert isinstance(gateway, ModelGateway)

    text = await generate_text(gateway, "m", "Say hello")
    assert text.startswith("[Mock response to: Say hello")

    data = await generate_json(
        gateway, "m", "Trip", GenerateOptions(response_schema=SEARCH_PROPOSAL_SCHEMA)
    )
    assert data["searchQuery"] == "Trip"

    with pytest.raises(ValueError):
        await generate_json(gateway, "m", "Trip", GenerateOptions())


def test_error_for_status():
    """HTTP status codes and provider messages map onto typed errors."""
    print("\n" + "=" * 60)
    print("TEST 2: Error mapping")
    print("=" * 60)

    assert isinstance(_error_for_status(401, "unauthorized"), AuthenticationError)
    assert isinstance(_error_for_status(400, "API key not valid"), AuthenticationError)
    assert isinstance(_error_for_status(504, "gateway timeout"), DeadlineExceededError)
    assert isinstance(_error_for_status(None, "Deadline exceeded"), DeadlineExceededError)
    assert isinstance(_error_for_status(400, "blocked: SAFETY"), SafetyBlockedError)

    generic = _error_for_status(500, "internal")
    assert type(generic) is GatewayError
    assert generic.status == 500
    print("\n[PASS] Errors mapped")


def test_to_json_schema():
    converted = to_json_schema(SEARCH_PROPOSAL_SCHEMA)
    assert converted["type"] == "object"
    assert converted["properties"]["searchQuery"] == {"type": "string"}
    assert converted["properties"]["questions"] == {"type": "array", "items": {"type": "string"}}
    assert converted["required"] == ["searchQuery", "questions"]


def test_adapters_require_api_key(monkeypatch):
    monkeypatch.setattr("chorus.llm.adapters.GEMINI_API_KEY", None)
    with pytest.raises(ValueError):
        GeminiAdapter()


def test_client_requires_context_manager():
    adapter = GeminiAdapter(api_key="test-key")
    with pytest.raises(RuntimeError):
        adapter.client


def test_gemini_content_conversion():
    adapter = GeminiAdapter(api_key="test-key")
    converted = adapter._to_gemini_content(_user_with_attachments())

    assert converted.role == "user"
    assert converted.parts[0].text == "Describe these"
    assert converted.parts[1].inline_data.mime_type == "image/png"
    assert converted.parts[1].inline_data.data == b"png-bytes"


def test_openrouter_message_conversion():
    adapter = OpenRouterAdapter(api_key="test-key")

    message = adapter._to_openai_message(_user_with_attachments())
    types = [block["type"] for block in message["content"]]
    assert message["role"] == "user"
    assert types == ["text", "image_url", "text", "file"]
    assert message["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")
    assert message["content"][2]["text"] == "plain text"

    reply = adapter._to_openai_message(
        Content(role=ContentRole.MODEL, parts=[Part.from_text("Hi "), Part.from_text("there")])
    )
    assert reply == {"role": "assistant", "content": "Hi there"}


def test_anthropic_message_conversion():
    adapter = AnthropicAdapter(api_key="test-key")
    message = adapter._to_anthropic_message(_user_with_attachments())

    types = [block["type"] for block in message["content"]]
    assert types == ["text", "image", "text", "document"]
    assert message["content"][1]["source"]["media_type"] == "image/png"
    assert json.dumps(message)  # serializable as sent on the wire


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("MODEL GATEWAY TESTS")
    print("=" * 60)

    test_part_requires_exactly_one_payload()
    test_content_helpers()
    test_temperature_range()
    test_parse_json_text()
    asyncio.run(test_generate_helpers())
    test_error_for_status()
    test_to_json_schema()
    test_client_requires_context_manager()
    test_gemini_content_conversion()
    test_openrouter_message_conversion()
    test_anthropic_message_conversion()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
