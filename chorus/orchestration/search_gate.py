"""Search query refinement ahead of a confirmed web search.

The gate turns a raw user input into a refined search query plus a few
clarifying questions. The run then pauses until the user confirms (possibly
after editing the query) or cancels.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..llm.completion import generate_json
from ..llm.errors import ResponseParseError
from ..llm.protocols import GenerateOptions
from .models import SearchProposal
from .prompts import SEARCH_PROPOSAL_SCHEMA, SEARCH_REFINER_SYSTEM_INSTRUCTION

if TYPE_CHECKING:
    from ..llm.protocols import ModelGateway

logger = logging.getLogger(__name__)

MAX_CLARIFYING_QUESTIONS = 5


class SearchGate:
    """Proposes a search query for user confirmation."""

    def __init__(self, gateway: ModelGateway, model: str):
        self.gateway = gateway
        self.model = model

    async def propose_query(self, user_input: str) -> SearchProposal:
        """
        Ask the model for an optimal search query and clarifying questions.

        Args:
            user_input: The raw user input, in any language

        Returns:
            SearchProposal with the query and up to five questions

        Raises:
            ResponseParseError: If the structured response has the wrong shape
            GatewayError: If the model call fails
        """
        logger.info(f"Proposing search query for: {user_input[:60]}...")

        data = await generate_json(
            self.gateway,
            self.model,
            user_input,
            GenerateOptions(
                system_instruction=SEARCH_REFINER_SYSTEM_INSTRUCTION,
                response_schema=SEARCH_PROPOSAL_SCHEMA,
            ),
        )
        proposal = self._parse_proposal(data)

        logger.info(
            f"Proposed query '{proposal.search_query}' "
            f"with {len(proposal.questions)} clarifying questions"
        )
        return proposal

    @staticmethod
    def _parse_proposal(data) -> SearchProposal:
        if not isinstance(data, dict):
            raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")

        query = data.get("searchQuery")
        if not isinstance(query, str) or not query.strip():
            raise ResponseParseError("Search proposal is missing 'searchQuery'")

        questions = data.get("questions") or []
        if not isinstance(questions, list):
            raise ResponseParseError("Search proposal 'questions' must be a list")

        cleaned = [q.strip() for q in questions if isinstance(q, str) and q.strip()]
        return SearchProposal(
            search_query=query.strip(),
            questions=cleaned[:MAX_CLARIFYING_QUESTIONS],
        )
