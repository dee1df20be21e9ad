"""Protocol definitions for model gateways."""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContentRole(str, Enum):
    """Role of a content block in a conversation."""

    USER = "user"
    MODEL = "model"


class Tool(str, Enum):
    """Server-side capabilities a call may enable."""

    WEB_SEARCH = "web_search"
    CODE_EXECUTION = "code_execution"


class InlineData(BaseModel):
    """Binary payload carried inline (base64 encoded)."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: str

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    @classmethod
    def from_bytes(cls, mime_type: str, payload: bytes) -> InlineData:
        return cls(mime_type=mime_type, data=base64.b64encode(payload).decode("ascii"))


class Part(BaseModel):
    """One piece of content: either text or an inline attachment."""

    model_config = ConfigDict(frozen=True)

    text: str | None = None
    inline_data: InlineData | None = None

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> Part:
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("A part carries exactly one of text or inline_data")
        return self

    @classmethod
    def from_text(cls, text: str) -> Part:
        return cls(text=text)

    @property
    def is_text(self) -> bool:
        return self.text is not None


class Content(BaseModel):
    """A role-tagged list of parts, the unit of conversation history."""

    model_config = ConfigDict(frozen=True)

    role: ContentRole
    parts: list[Part]

    @classmethod
    def user(cls, *parts: Part | str) -> Content:
        return cls(
            role=ContentRole.USER,
            parts=[Part.from_text(p) if isinstance(p, str) else p for p in parts],
        )


class Source(BaseModel):
    """A web citation returned by a search-grounded call."""

    model_config = ConfigDict(frozen=True)

    uri: str
    title: str


class ToolOutput(BaseModel):
    """One code-execution invocation: the code and its ordered results."""

    model_config = ConfigDict(frozen=True)

    code: str
    result: list[Part] = Field(default_factory=list)


class GenerateOptions(BaseModel):
    """Per-call options for a gateway request."""

    model_config = ConfigDict(frozen=True)

    system_instruction: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    response_schema: dict[str, Any] | None = None
    tools: tuple[Tool, ...] = ()


class GenerateResult(BaseModel):
    """What a gateway call produced."""

    text: str = ""
    sources: list[Source] = Field(default_factory=list)
    tool_outputs: list[ToolOutput] = Field(default_factory=list)


@runtime_checkable
class ModelGateway(Protocol):
    """Protocol for model gateways.

    Implement this protocol to add support for another hosted model API.
    Implementations translate every failure into a
    :class:`~chorus.llm.errors.GatewayError` subclass and never retry.
    """

    async def generate(
        self,
        model: str,
        contents: list[Content] | str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """
        Issue one prompt and return the generated output.

        Args:
            model: Model identifier understood by the backend
            contents: Conversation history ending with the prompt, or a bare
                prompt string
            options: System instruction, temperature, schema and tools

        Returns:
            GenerateResult with text, grounding sources and tool outputs
        """
        ...


def normalize_contents(contents: list[Content] | str) -> list[Content]:
    """Accept a bare prompt string wherever a content list is expected."""
    if isinstance(contents, str):
        return [Content.user(contents)]
    return list(contents)
