"""Data models for the chat orchestration pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..llm.protocols import Content, ContentRole, Part, Source, ToolOutput

if TYPE_CHECKING:
    from ..config.loader import GenerationConfig


class ResearchMode(str, Enum):
    """How much web access a run gets."""

    OFFLINE = "offline"  # No web access
    WEB = "web"  # Search with user confirmation
    DEEP = "deep"  # Search without confirmation

    @property
    def searches(self) -> bool:
        return self in (ResearchMode.WEB, ResearchMode.DEEP)


class GenerationDepth(str, Enum):
    """How many agents a run fans out to."""

    FAST = "fast"  # Single call
    BALANCED = "balanced"  # 2-way fan-out
    DEEP = "deep"  # 4-way fan-out

    @property
    def agent_count(self) -> int:
        """Number of parallel drafting agents (0 for the single-call path)."""
        return {GenerationDepth.FAST: 0, GenerationDepth.BALANCED: 2, GenerationDepth.DEEP: 4}[self]


class StageStatus(Enum):
    """Status of a pipeline stage."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Stage:
    """One named, trackable unit of work within a run."""

    name: str
    label: str
    icon: str
    status: StageStatus = StageStatus.PENDING


class GenerationDetails(BaseModel):
    """The intermediate drafts of one multi-agent run."""

    model_config = ConfigDict(frozen=True)

    initial: list[str]
    refined: list[str]

    @model_validator(mode="after")
    def _drafts_pair_up(self) -> GenerationDetails:
        if len(self.initial) != len(self.refined):
            raise ValueError(
                f"Initial and refined drafts must pair up "
                f"({len(self.initial)} != {len(self.refined)})"
            )
        return self


class Message(BaseModel):
    """A chat message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: ContentRole
    parts: list[Part]
    sources: list[Source] = Field(default_factory=list)
    is_error: bool = False
    generation_details: GenerationDetails | None = None
    tool_outputs: list[ToolOutput] = Field(default_factory=list)
    attachment_names: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    @field_validator("parts")
    @classmethod
    def _parts_not_empty(cls, parts: list[Part]) -> list[Part]:
        if not parts:
            raise ValueError("A message needs at least one part")
        return parts

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if p.is_text)

    @classmethod
    def model_reply(cls, text: str, **kwargs) -> Message:
        return cls(role=ContentRole.MODEL, parts=[Part.from_text(text)], **kwargs)

    @classmethod
    def error(cls, text: str) -> Message:
        return cls(role=ContentRole.MODEL, parts=[Part.from_text(text)], is_error=True)

    def to_history_content(self) -> Content | None:
        """Text-only history entry, or None when there is no non-blank text."""
        parts = [p for p in self.parts if p.is_text and p.text.strip()]
        if not parts:
            return None
        return Content(role=self.role, parts=parts)


class Conversation(BaseModel):
    """An ordered, append-only list of messages with a title."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = "New Chat"
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    def with_message(self, message: Message) -> Conversation:
        """Copy of this conversation with one more message."""
        return self.model_copy(update={"messages": [*self.messages, message]})

    def with_title(self, title: str) -> Conversation:
        return self.model_copy(update={"title": title})


@dataclass(frozen=True)
class SearchProposal:
    """Refined search query and clarifying questions from the search gate."""

    search_query: str
    questions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SearchConfirmation:
    """A run paused until the user confirms or cancels the proposed search."""

    original_input: str
    proposal: SearchProposal
    attachments: list[Part]
    history: list[Content]
    settings: GenerationConfig
    conversation_id: str


@dataclass(frozen=True)
class RefinedPrompt:
    """Output of the prompt refiner."""

    original: str
    refined: str
    rationale: str
    questions: list[str] = field(default_factory=list)
