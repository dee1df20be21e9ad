"""Adapter implementations for model gateways."""

from __future__ import annotations

import json
import logging
from typing import Any

import anthropic
import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI

from ..settings import (
    ANTHROPIC_API_KEY,
    GATEWAY_TIMEOUT,
    GEMINI_API_KEY,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
)
from .errors import (
    AuthenticationError,
    DeadlineExceededError,
    GatewayError,
    NetworkError,
    SafetyBlockedError,
)
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
    normalize_contents,
)

logger = logging.getLogger(__name__)

# Anthropic server tools
ANTHROPIC_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}
ANTHROPIC_CODE_EXECUTION_TOOL = {"type": "code_execution_20250522", "name": "code_execution"}
ANTHROPIC_CODE_EXECUTION_BETA = "code-execution-2025-05-22"


def _error_for_status(status: int | None, message: str) -> GatewayError:
    """Map an HTTP-ish status and message onto the gateway error taxonomy."""
    if status in (401, 403) or "API key not valid" in message:
        return AuthenticationError(message, status=status)
    if status in (408, 504) or "deadline" in message.lower():
        return DeadlineExceededError(message, status=status)
    if "SAFETY" in message:
        return SafetyBlockedError(message, status=status)
    return GatewayError(message, status=status)


def to_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert an OpenAPI-style schema (``"type": "OBJECT"``) to JSON Schema casing."""
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.lower()
        elif isinstance(value, dict):
            converted[key] = to_json_schema(value)
        else:
            converted[key] = value
    return converted


class _ToolOutputCollector:
    """Groups code-execution parts into ToolOutput records in arrival order."""

    def __init__(self):
        self._outputs: list[tuple[str, list[Part]]] = []

    def start(self, code: str) -> None:
        self._outputs.append((code, []))

    def add(self, part: Part) -> None:
        if not self._outputs:
            # Result without preceding code block
            self.start("")
        self._outputs[-1][1].append(part)

    @property
    def active(self) -> bool:
        return bool(self._outputs)

    def build(self) -> list[ToolOutput]:
        return [ToolOutput(code=code, result=result) for code, result in self._outputs]


class GeminiAdapter(ModelGateway):
    """
    Adapter for the Google Gemini API.

    Supports native web-search grounding and server-side code execution.

    Usage:
        async with GeminiAdapter() as gateway:
            result = await gateway.generate("gemini-2.5-flash", "What is 2+2?")
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = GATEWAY_TIMEOUT,
    ):
        """
        Initialize the Gemini adapter.

        Args:
            api_key: Optional API key. If not provided, uses GEMINI_API_KEY env var.
            timeout: Transport timeout in seconds
        """
        self.api_key = api_key or GEMINI_API_KEY
        self.timeout = timeout
        self._client: genai.Client | None = None

        if not self.api_key:
            raise ValueError("Gemini API key required. Set GEMINI_API_KEY in .env")

        logger.info("Gemini adapter initialized")

    async def __aenter__(self) -> "GeminiAdapter":
        self._client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aio.aclose()
            self._client = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def generate(
        self,
        model: str,
        contents: list[Content] | str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate content with optional grounding, code execution and schema."""
        options = options or GenerateOptions()
        history = normalize_contents(contents)

        tools = []
        for tool in options.tools:
            if tool == Tool.WEB_SEARCH:
                tools.append(types.Tool(google_search=types.GoogleSearch()))
            elif tool == Tool.CODE_EXECUTION:
                tools.append(types.Tool(code_execution=types.ToolCodeExecution()))

        config = types.GenerateContentConfig(
            system_instruction=options.system_instruction,
            temperature=options.temperature,
            tools=tools or None,
            response_mime_type="application/json" if options.response_schema else None,
            response_schema=options.response_schema,
        )

        logger.info(f"Generating with {model} ({len(history)} contents, tools={list(options.tools)})")

        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=[self._to_gemini_content(c) for c in history],
                config=config,
            )
        except genai_errors.APIError as e:
            raise _error_for_status(e.code, str(e)) from e
        except httpx.TimeoutException as e:
            raise DeadlineExceededError(f"Request to {model} timed out") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Could not reach the Gemini API: {e}") from e

        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason:
            raise SafetyBlockedError(f"Prompt blocked: SAFETY ({feedback.block_reason})")

        candidate = response.candidates[0] if response.candidates else None
        if candidate is not None and candidate.finish_reason == types.FinishReason.SAFETY:
            raise SafetyBlockedError("Response blocked: SAFETY")

        result = GenerateResult(
            text=response.text or "",
            sources=self._extract_sources(candidate),
            tool_outputs=self._extract_tool_outputs(candidate),
        )
        logger.info(f"Generation received ({len(result.text)} chars)")
        logger.debug(f"Usage: {response.usage_metadata}")
        return result

    def _to_gemini_content(self, content: Content) -> types.Content:
        parts = []
        for part in content.parts:
            if part.is_text:
                parts.append(types.Part(text=part.text))
            else:
                parts.append(
                    types.Part(
                        inline_data=types.Blob(
                            mime_type=part.inline_data.mime_type,
                            data=part.inline_data.to_bytes(),
                        )
                    )
                )
        return types.Content(role=content.role.value, parts=parts)

    def _extract_sources(self, candidate) -> list[Source]:
        if candidate is None or candidate.grounding_metadata is None:
            return []
        chunks = candidate.grounding_metadata.grounding_chunks or []
        return [
            Source(uri=chunk.web.uri, title=chunk.web.title or chunk.web.uri)
            for chunk in chunks
            if chunk.web is not None and chunk.web.uri
        ]

    def _extract_tool_outputs(self, candidate) -> list[ToolOutput]:
        if candidate is None or candidate.content is None:
            return []

        collector = _ToolOutputCollector()
        for part in candidate.content.parts or []:
            if part.executable_code is not None:
                collector.start(part.executable_code.code or "")
            elif part.code_execution_result is not None:
                collector.add(Part.from_text(part.code_execution_result.output or ""))
            elif part.inline_data is not None and part.inline_data.data and collector.active:
                # Plots produced by executed code
                collector.add(
                    Part(
                        inline_data=InlineData.from_bytes(
                            part.inline_data.mime_type or "image/png",
                            part.inline_data.data,
                        )
                    )
                )
        return collector.build()


class OpenRouterAdapter(ModelGateway):
    """
    Adapter for OpenRouter API.

    OpenRouter provides access to many LLMs through an OpenAI-compatible API.
    Web search is provided by the OpenRouter ``web`` plugin; code execution
    is not available and is ignored.

    Usage:
        async with OpenRouterAdapter() as gateway:
            result = await gateway.generate("google/gemini-2.5-pro", "What is machine learning?")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = GATEWAY_TIMEOUT,
    ):
        """
        Initialize the OpenRouter adapter.

        Args:
            api_key: Optional API key. If not provided, uses OPENROUTER_API_KEY env var.
            base_url: API base URL. Defaults to OPENROUTER_BASE_URL.
            timeout: Transport timeout in seconds
        """
        self.api_key = api_key or OPENROUTER_API_KEY
        self.base_url = base_url or OPENROUTER_BASE_URL
        self.timeout = timeout
        self._client: AsyncOpenAI | None = None

        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY in .env"
            )

        logger.info(f"OpenRouter adapter initialized for {self.base_url}")

    async def __aenter__(self) -> "OpenRouterAdapter":
        self._client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            max_retries=0,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def generate(
        self,
        model: str,
        contents: list[Content] | str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate a chat completion for the given history."""
        options = options or GenerateOptions()
        messages: list[dict] = []

        if options.system_instruction:
            messages.append({"role": "system", "content": options.system_instruction})

        for content in normalize_contents(contents):
            messages.append(self._to_openai_message(content))

        kwargs: dict[str, Any] = {"model": model, "messages": messages}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.response_schema:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "schema": to_json_schema(options.response_schema),
                },
            }
        if Tool.WEB_SEARCH in options.tools:
            kwargs["extra_body"] = {"plugins": [{"id": "web"}]}
        if Tool.CODE_EXECUTION in options.tools:
            logger.debug("Code execution is not available through OpenRouter, ignoring")

        logger.info(f"Completing {len(messages)} messages with {model}")
        logger.debug(f"Temperature: {options.temperature}, tools: {list(options.tools)}")

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthenticationError(str(e), status=e.status_code) from e
        except openai.APITimeoutError as e:
            raise DeadlineExceededError(f"Request to {model} timed out") from e
        except openai.APIConnectionError as e:
            raise NetworkError(f"Could not reach OpenRouter: {e}") from e
        except openai.APIStatusError as e:
            raise _error_for_status(e.status_code, str(e)) from e
        except openai.APIError as e:
            raise GatewayError(str(e)) from e

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise SafetyBlockedError("Response blocked: SAFETY (content_filter)")

        sources = []
        for annotation in getattr(choice.message, "annotations", None) or []:
            if annotation.type == "url_citation":
                citation = annotation.url_citation
                sources.append(Source(uri=citation.url, title=citation.title or citation.url))

        result = GenerateResult(text=choice.message.content or "", sources=sources)
        logger.info(f"Completion received ({len(result.text)} chars)")
        logger.debug(f"Usage: {response.usage}")
        return result

    def _to_openai_message(self, content: Content) -> dict:
        role = "assistant" if content.role == ContentRole.MODEL else "user"
        if role == "assistant":
            return {"role": role, "content": "".join(p.text for p in content.parts if p.is_text)}

        blocks: list[dict] = []
        for part in content.parts:
            if part.is_text:
                blocks.append({"type": "text", "text": part.text})
                continue

            mime_type = part.inline_data.mime_type
            data_url = f"data:{mime_type};base64,{part.inline_data.data}"
            if mime_type.startswith("image/"):
                blocks.append({"type": "image_url", "image_url": {"url": data_url}})
            elif mime_type.startswith("text/") or mime_type == "application/json":
                blocks.append({"type": "text", "text": part.inline_data.to_bytes().decode("utf-8", "replace")})
            elif mime_type == "application/pdf":
                blocks.append({"type": "file", "file": {"filename": "attachment.pdf", "file_data": data_url}})
            else:
                logger.warning(f"Skipping unsupported attachment type for OpenRouter: {mime_type}")
        return {"role": role, "content": blocks}


class AnthropicAdapter(ModelGateway):
    """
    Adapter for Anthropic API (direct).

    Uses the Anthropic Python SDK with the server-side web search tool and the
    beta code execution tool.

    Usage:
        async with AnthropicAdapter() as gateway:
            result = await gateway.generate("claude-sonnet-4-20250514", "What is machine learning?")
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = GATEWAY_TIMEOUT,
        max_tokens: int = 8192,
    ):
        """
        Initialize the Anthropic adapter.

        Args:
            api_key: Optional API key. If not provided, uses ANTHROPIC_API_KEY env var.
            timeout: Transport timeout in seconds
            max_tokens: Maximum tokens to generate per call
        """
        self.api_key = api_key or ANTHROPIC_API_KEY
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client: anthropic.AsyncAnthropic | None = None

        if not self.api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY in .env"
            )

        logger.info("Anthropic adapter initialized")

    async def __aenter__(self) -> "AnthropicAdapter":
        self._client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            max_retries=0,
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def generate(
        self,
        model: str,
        contents: list[Content] | str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate a message, with server tools when requested."""
        options = options or GenerateOptions()

        system_prompt = options.system_instruction or ""
        if options.response_schema:
            schema = json.dumps(to_json_schema(options.response_schema))
            system_prompt += (
                "\n\nRespond only with JSON matching this schema, with no other text:\n"
                f"{schema}"
            )

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "system": system_prompt.strip(),
            "messages": [self._to_anthropic_message(c) for c in normalize_contents(contents)],
        }
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature

        tools = []
        if Tool.WEB_SEARCH in options.tools:
            tools.append(ANTHROPIC_WEB_SEARCH_TOOL)
        if Tool.CODE_EXECUTION in options.tools:
            tools.append(ANTHROPIC_CODE_EXECUTION_TOOL)
        if tools:
            kwargs["tools"] = tools

        logger.info(f"Generating with {model} (tools={list(options.tools)})")

        try:
            if Tool.CODE_EXECUTION in options.tools:
                message = await self.client.beta.messages.create(
                    betas=[ANTHROPIC_CODE_EXECUTION_BETA], **kwargs
                )
            else:
                message = await self.client.messages.create(**kwargs)
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise AuthenticationError(str(e), status=e.status_code) from e
        except anthropic.APITimeoutError as e:
            raise DeadlineExceededError(f"Request to {model} timed out") from e
        except anthropic.APIConnectionError as e:
            raise NetworkError(f"Could not reach the Anthropic API: {e}") from e
        except anthropic.APIStatusError as e:
            raise _error_for_status(e.status_code, str(e)) from e
        except anthropic.APIError as e:
            raise GatewayError(str(e)) from e

        if message.stop_reason == "refusal":
            raise SafetyBlockedError("Response blocked: SAFETY (refusal)")

        text = ""
        sources: list[Source] = []
        collector = _ToolOutputCollector()
        for block in message.content:
            if block.type == "text":
                text += block.text
                for citation in getattr(block, "citations", None) or []:
                    if citation.type == "web_search_result_location":
                        sources.append(Source(uri=citation.url, title=citation.title or citation.url))
            elif block.type == "server_tool_use" and block.name == "code_execution":
                collector.start(str(block.input.get("code", "")))
            elif block.type == "code_execution_tool_result":
                output = block.content
                stdout = getattr(output, "stdout", "") or ""
                stderr = getattr(output, "stderr", "") or ""
                collector.add(Part.from_text(stdout + stderr))

        logger.info(f"Generation received ({len(text)} chars)")
        logger.debug(f"Usage: input={message.usage.input_tokens}, output={message.usage.output_tokens}")

        return GenerateResult(text=text, sources=sources, tool_outputs=collector.build())

    def _to_anthropic_message(self, content: Content) -> dict:
        role = "assistant" if content.role == ContentRole.MODEL else "user"
        blocks: list[dict] = []
        for part in content.parts:
            if part.is_text:
                if part.text:
                    blocks.append({"type": "text", "text": part.text})
                continue

            mime_type = part.inline_data.mime_type
            source = {"type": "base64", "media_type": mime_type, "data": part.inline_data.data}
            if mime_type.startswith("image/"):
                blocks.append({"type": "image", "source": source})
            elif mime_type == "application/pdf":
                blocks.append({"type": "document", "source": source})
            elif mime_type.startswith("text/") or mime_type == "application/json":
                blocks.append({"type": "text", "text": part.inline_data.to_bytes().decode("utf-8", "replace")})
            else:
                logger.warning(f"Skipping unsupported attachment type for Anthropic: {mime_type}")
        return {"role": role, "content": blocks}
