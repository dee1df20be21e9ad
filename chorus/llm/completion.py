"""Convenience functions for gateway calls."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import ResponseParseError
from .protocols import Content, GenerateOptions, GenerateResult, ModelGateway

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


async def generate_text(
    gateway: ModelGateway,
    model: str,
    contents: list[Content] | str,
    options: GenerateOptions | None = None,
) -> str:
    """
    Generate and return only the text of the response.

    Args:
        gateway: Model gateway to call
        model: Model identifier
        contents: History ending with the prompt, or a bare prompt
        options: Per-call options

    Returns:
        The generated text

    Example:
        text = await generate_text(gateway, "gemini-2.5-flash", "Say hello")
    """
    result = await gateway.generate(model, contents, options)
    return result.text


async def generate_json(
    gateway: ModelGateway,
    model: str,
    contents: list[Content] | str,
    options: GenerateOptions,
) -> Any:
    """
    Generate a structured response and parse it as JSON.

    The options must carry a ``response_schema``; the caller validates the
    parsed value against the shape it expects.

    Args:
        gateway: Model gateway to call
        model: Model identifier
        contents: History ending with the prompt, or a bare prompt
        options: Per-call options including the response schema

    Returns:
        The decoded JSON value

    Raises:
        ResponseParseError: If the response text is not valid JSON
    """
    if options.response_schema is None:
        raise ValueError("generate_json requires options.response_schema")

    result: GenerateResult = await gateway.generate(model, contents, options)
    return parse_json_text(result.text)


def parse_json_text(text: str) -> Any:
    """Decode a JSON payload, taking the first markdown code fence when present."""
    payload = text.strip()
    match = _FENCED_BLOCK.search(payload) if "```" in payload else None
    if match:
        payload = match.group(1)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug(f"Malformed JSON response: {text[:200]!r}")
        raise ResponseParseError(f"Malformed JSON in structured response: {e}") from e
