"""Chorus multi-agent chat source package."""

from .orchestration import ChatSession, GenerationOrchestrator, Message, StageTracker

__all__ = [
    "ChatSession",
    "GenerationOrchestrator",
    "Message",
    "StageTracker",
]
