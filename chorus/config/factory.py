"""Factory functions to create gateways, stores and sessions from configuration."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Union

from ..llm.protocols import Content, GenerateOptions, GenerateResult, normalize_contents
from ..orchestration.prompts import CRITIC_SYSTEM_INSTRUCTION, PERFECT_VERDICT

if TYPE_CHECKING:
    from ..llm.protocols import ModelGateway
    from ..orchestration.orchestrator import GenerationOrchestrator, ProgressCallback
    from ..orchestration.session import ChatSession
    from ..storage.store import ChatStore
    from .loader import GatewayConfig, ProfileConfig, StorageConfig


@dataclass
class GatewayCall:
    """One recorded call to the mock gateway."""

    model: str
    contents: list[Content]
    options: GenerateOptions

    @property
    def prompt(self) -> str:
        """Text of the last (prompt) content."""
        return "".join(p.text for p in self.contents[-1].parts if p.is_text)

    @property
    def system_instruction(self) -> str | None:
        return self.options.system_instruction


Response = Union[GenerateResult, str, Exception]


class MockGateway:
    """
    Mock model gateway for testing.

    Every call is recorded in ``calls``. A ``responder`` decides the reply;
    it may return a GenerateResult, a plain string, or an exception to raise.
    Without a responder, schema calls get valid JSON of the requested shape,
    critique calls get the PERFECT verdict and everything else gets a
    canned mock answer.
    """

    def __init__(
        self,
        responder: Callable[[GatewayCall], Response] | None = None,
        latency: float = 0.0,
    ):
        self.responder = responder
        self.latency = latency
        self.calls: list[GatewayCall] = []

    async def generate(
        self,
        model: str,
        contents: list[Content] | str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        call = GatewayCall(model, normalize_contents(contents), options or GenerateOptions())
        self.calls.append(call)
        await asyncio.sleep(self.latency)

        response = self.responder(call) if self.responder else None
        if response is None:
            response = self.default_response(call)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return GenerateResult(text=response)
        return response

    def calls_with(self, system_instruction: str | None) -> list[GatewayCall]:
        """Recorded calls that used the given system instruction."""
        return [c for c in self.calls if c.system_instruction == system_instruction]

    @staticmethod
    def default_response(call: GatewayCall) -> str:
        schema = call.options.response_schema
        if schema is not None:
            if schema.get("type", "").upper() == "ARRAY":
                return json.dumps(["Tell me more.", "Give an example.", "Summarize this."])
            properties = schema.get("properties", {})
            if "searchQuery" in properties:
                return json.dumps({
                    "searchQuery": call.prompt[:80],
                    "questions": ["Which time frame?", "Any budget?", "Which region?"],
                })
            return json.dumps({
                "refined": f"[Refined] {call.prompt}",
                "questions": [],
                "rationale": "Clarified the goal.",
            })
        if call.system_instruction == CRITIC_SYSTEM_INSTRUCTION:
            return PERFECT_VERDICT
        return f"[Mock response to: {call.prompt[:50]}...]"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


def create_gateway(config: GatewayConfig) -> ModelGateway:
    """Create a model gateway from configuration.

    The returned gateway must be entered with ``async with`` before use.

    Args:
        config: Gateway configuration

    Returns:
        ModelGateway instance (GeminiAdapter, OpenRouterAdapter,
        AnthropicAdapter, or MockGateway)

    Raises:
        ValueError: If backend type is not supported
    """
    if config.backend == "gemini":
        from ..llm import GeminiAdapter

        return GeminiAdapter(api_key=config.api_key, timeout=config.timeout)

    elif config.backend == "openrouter":
        from ..llm import OpenRouterAdapter

        return OpenRouterAdapter(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    elif config.backend == "anthropic":
        from ..llm import AnthropicAdapter

        return AnthropicAdapter(api_key=config.api_key, timeout=config.timeout)

    elif config.backend == "mock":
        return MockGateway()

    else:
        raise ValueError(f"Unsupported gateway backend: {config.backend}")


def create_store(config: StorageConfig) -> ChatStore:
    """Create a chat store from configuration.

    Args:
        config: Storage configuration

    Returns:
        JsonChatStore or InMemoryChatStore
    """
    from ..storage import InMemoryChatStore, JsonChatStore

    if config.backend == "json":
        return JsonChatStore(config.path)
    elif config.backend == "memory":
        return InMemoryChatStore()
    else:
        raise ValueError(f"Unsupported storage backend: {config.backend}")


def create_orchestrator(
    profile: ProfileConfig,
    gateway: ModelGateway,
    on_progress: ProgressCallback | None = None,
) -> GenerationOrchestrator:
    """Create a one-shot orchestrator for the profile's generation settings."""
    from ..orchestration.orchestrator import GenerationOrchestrator

    return GenerationOrchestrator(
        gateway,
        profile.generation,
        pacing=profile.pacing,
        on_progress=on_progress,
    )


def create_session(
    profile: ProfileConfig,
    gateway: ModelGateway,
    store: ChatStore | None = None,
    on_progress: ProgressCallback | None = None,
    on_suggestions: Callable[[list[str]], None] | None = None,
) -> ChatSession:
    """Create a chat session wired from a configuration profile.

    Args:
        profile: Profile configuration
        gateway: Entered model gateway
        store: Chat store. Built from ``profile.storage`` if omitted.
        on_progress: Called with the stage tracker after every stage change
        on_suggestions: Called when new follow-up suggestions arrive

    Returns:
        Configured ChatSession
    """
    from ..orchestration.session import ChatSession

    return ChatSession(
        gateway,
        profile.generation,
        store or create_store(profile.storage),
        enrichment=profile.enrichment,
        session_config=profile.session,
        pacing=profile.pacing,
        on_progress=on_progress,
        on_suggestions=on_suggestions,
    )
