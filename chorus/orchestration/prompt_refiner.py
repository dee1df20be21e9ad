"""Rewrites a raw prompt into a clearer, more actionable one."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..llm.completion import generate_json
from ..llm.errors import ResponseParseError
from ..llm.protocols import GenerateOptions
from .models import RefinedPrompt
from .prompts import PROMPT_REFINER_SYSTEM_INSTRUCTION, REFINED_PROMPT_SCHEMA

if TYPE_CHECKING:
    from ..llm.protocols import ModelGateway

logger = logging.getLogger(__name__)


class PromptRefiner:
    """Suggests an improved version of a prompt before it is submitted."""

    def __init__(self, gateway: ModelGateway, model: str):
        self.gateway = gateway
        self.model = model

    async def refine(self, text: str) -> RefinedPrompt:
        """
        Refine a prompt, keeping its language and intent.

        Args:
            text: The prompt as typed by the user

        Returns:
            RefinedPrompt with the rewrite, a short rationale and any
            questions about missing information

        Raises:
            ValueError: If the prompt is blank
            ResponseParseError: If the structured response has the wrong shape
        """
        if not text.strip():
            raise ValueError("Cannot refine an empty prompt")

        data = await generate_json(
            self.gateway,
            self.model,
            text,
            GenerateOptions(
                system_instruction=PROMPT_REFINER_SYSTEM_INSTRUCTION,
                response_schema=REFINED_PROMPT_SCHEMA,
            ),
        )
        if not isinstance(data, dict) or not isinstance(data.get("refined"), str):
            raise ResponseParseError("Refined prompt response is missing 'refined'")

        questions = data.get("questions") or []
        refined = RefinedPrompt(
            original=text,
            refined=data["refined"].strip(),
            rationale=str(data.get("rationale", "")).strip(),
            questions=[q for q in questions if isinstance(q, str) and q.strip()],
        )
        logger.debug(f"Refined prompt: {refined.rationale}")
        return refined
