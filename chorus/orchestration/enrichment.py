"""
Post-generation enrichment: long-term memory and follow-up suggestions.

Both computations are best-effort background tasks dispatched after a
successful run. Their failures are logged at the task boundary and never
reach the user or the run that triggered them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from ..llm.completion import generate_json
from ..llm.protocols import GenerateOptions
from .prompts import (
    MEMORY_SYSTEM_INSTRUCTION,
    SUGGESTIONS_SCHEMA,
    SUGGESTIONS_SYSTEM_INSTRUCTION,
    exchange_prompt,
)

if TYPE_CHECKING:
    from ..config.loader import EnrichmentConfig
    from ..llm.protocols import ModelGateway

logger = logging.getLogger(__name__)


def admit_memory(
    memories: list[str],
    candidate: str,
    max_memories: int = 20,
    min_length: int = 10,
) -> list[str]:
    """
    Return a new memory list with ``candidate`` admitted at the front.

    Candidates no longer than ``min_length`` after trimming are rejected and
    the list is returned unchanged. An exact duplicate moves to the front
    instead of being added twice. The oldest entries are evicted past
    ``max_memories``.
    """
    candidate = candidate.strip()
    if len(candidate) <= min_length:
        return list(memories)
    rest = [m for m in memories if m != candidate]
    return [candidate, *rest][:max_memories]


class MemoryExtractor:
    """Extracts one durable fact about the user from an exchange."""

    def __init__(self, gateway: ModelGateway, model: str, temperature: float = 0.2):
        self.gateway = gateway
        self.model = model
        self.temperature = temperature

    async def extract(self, user_input: str, response: str) -> str:
        result = await self.gateway.generate(
            self.model,
            exchange_prompt(user_input, response),
            GenerateOptions(
                system_instruction=MEMORY_SYSTEM_INSTRUCTION,
                temperature=self.temperature,
            ),
        )
        return result.text.strip()


class SuggestionGenerator:
    """Proposes follow-up prompts for the user's next turn."""

    def __init__(self, gateway: ModelGateway, model: str, max_suggestions: int = 3):
        self.gateway = gateway
        self.model = model
        self.max_suggestions = max_suggestions

    async def suggest(self, user_input: str, response: str) -> list[str]:
        """Up to ``max_suggestions`` suggestions; empty when the reply is not a string list."""
        data = await generate_json(
            self.gateway,
            self.model,
            exchange_prompt(user_input, response),
            GenerateOptions(
                system_instruction=SUGGESTIONS_SYSTEM_INSTRUCTION,
                response_schema=SUGGESTIONS_SCHEMA,
            ),
        )
        if not isinstance(data, list):
            logger.warning(f"Ignoring non-list suggestions: {type(data).__name__}")
            return []
        suggestions = [s.strip() for s in data if isinstance(s, str) and s.strip()]
        return suggestions[: self.max_suggestions]


class EnrichmentDispatcher:
    """
    Fires memory extraction and suggestion generation as background tasks.

    Results are delivered through callbacks. The dispatcher keeps references
    to pending tasks so they are not garbage-collected and can be drained.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        model: str,
        config: EnrichmentConfig,
    ):
        self.memory_extractor = MemoryExtractor(
            gateway, model, temperature=config.memory_temperature
        )
        self.suggestion_generator = SuggestionGenerator(
            gateway, model, max_suggestions=config.max_suggestions
        )
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(
        self,
        user_input: str,
        response: str,
        on_memory: Callable[[str], None],
        on_suggestions: Callable[[list[str]], None],
        extract_memory: bool = True,
    ) -> None:
        """Start the enrichment tasks for one successful exchange."""
        if not response.strip():
            return

        if extract_memory:
            self._spawn(
                "memory extraction",
                self.memory_extractor.extract(user_input, response),
                on_memory,
            )
        self._spawn(
            "suggestions",
            self.suggestion_generator.suggest(user_input, response),
            on_suggestions,
        )

    async def drain(self) -> None:
        """Wait for every pending enrichment task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _spawn(self, label: str, work: Awaitable, deliver: Callable) -> None:
        task = asyncio.create_task(self._guarded(label, work, deliver))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guarded(label: str, work: Awaitable, deliver: Callable) -> None:
        try:
            result = await work
            deliver(result)
        except Exception as e:
            logger.warning(f"Enrichment ({label}) failed: {type(e).__name__}: {e}")
