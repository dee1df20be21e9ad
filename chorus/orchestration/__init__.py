"""Multi-agent generation pipeline and chat session control surface."""

from .models import (
    Conversation,
    GenerationDepth,
    GenerationDetails,
    Message,
    RefinedPrompt,
    ResearchMode,
    SearchConfirmation,
    SearchProposal,
    Stage,
    StageStatus,
)
from .stages import StageTracker, stage_template
from .search_gate import SearchGate
from .prompt_refiner import PromptRefiner
from .failures import FailureKind, classify_failure, friendly_message
from .orchestrator import GenerationOrchestrator
from .enrichment import (
    EnrichmentDispatcher,
    MemoryExtractor,
    SuggestionGenerator,
    admit_memory,
)
from .session import (
    ChatSession,
    EmptySubmissionError,
    NoPendingSearchError,
    SessionBusyError,
    SessionError,
)

__all__ = [
    # Models
    "Conversation",
    "GenerationDepth",
    "GenerationDetails",
    "Message",
    "RefinedPrompt",
    "ResearchMode",
    "SearchConfirmation",
    "SearchProposal",
    "Stage",
    "StageStatus",
    # Stages
    "StageTracker",
    "stage_template",
    # Pipeline
    "SearchGate",
    "PromptRefiner",
    "GenerationOrchestrator",
    # Failures
    "FailureKind",
    "classify_failure",
    "friendly_message",
    # Enrichment
    "EnrichmentDispatcher",
    "MemoryExtractor",
    "SuggestionGenerator",
    "admit_memory",
    # Session
    "ChatSession",
    "SessionError",
    "SessionBusyError",
    "EmptySubmissionError",
    "NoPendingSearchError",
]
