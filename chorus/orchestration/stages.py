"""
Stage tracking for a generation run.

The stage list of a run is pure data: a template keyed by research mode,
with the critique stage dropped when self-correction is off. Status changes
only move forward: advancing to stage i completes every earlier stage and
resets every later one to pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from .models import GenerationDepth, ResearchMode, Stage, StageStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageSpec:
    """Static description of a stage."""

    name: str
    label: str
    icon: str

    def new(self) -> Stage:
        return Stage(name=self.name, label=self.label, icon=self.icon)


GENERATE = StageSpec("generate", "Generating answer...", "bot")
HISTORY = StageSpec("history", "Processing history...", "history")
SEARCH = StageSpec("search", "Searching the web...", "search")
BRAINSTORM = StageSpec("brainstorm", "Brainstorming...", "bot")
REFINE = StageSpec("refine", "Refining drafts...", "sparkles")
SYNTHESIZE = StageSpec("synthesize", "Synthesizing answer...", "blend")
CRITIQUE = StageSpec("critique", "Critical review...", "shield-check")

FAST_TEMPLATE: tuple[StageSpec, ...] = (GENERATE,)

STAGE_TEMPLATES: dict[ResearchMode, tuple[StageSpec, ...]] = {
    ResearchMode.OFFLINE: (HISTORY, BRAINSTORM, REFINE, SYNTHESIZE, CRITIQUE),
    ResearchMode.WEB: (HISTORY, SEARCH, BRAINSTORM, REFINE, SYNTHESIZE, CRITIQUE),
    ResearchMode.DEEP: (HISTORY, SEARCH, BRAINSTORM, REFINE, SYNTHESIZE, CRITIQUE),
}


def stage_template(
    mode: ResearchMode,
    depth: GenerationDepth,
    self_correction: bool,
) -> tuple[StageSpec, ...]:
    """Ordered stage specs for a run configuration."""
    if depth == GenerationDepth.FAST:
        return FAST_TEMPLATE
    template = STAGE_TEMPLATES[mode]
    if not self_correction:
        template = tuple(spec for spec in template if spec is not CRITIQUE)
    return template


class StageTracker:
    """
    Ordered stages of one run with forward-only status updates.

    A tracker belongs to exactly one run. Observers are called with the
    tracker after every status change.
    """

    def __init__(
        self,
        stages: list[Stage],
        on_change: Callable[[StageTracker], None] | None = None,
    ):
        if not stages:
            raise ValueError("A run needs at least one stage")
        self._stages = stages
        self._on_change = on_change

    @classmethod
    def build(
        cls,
        mode: ResearchMode,
        depth: GenerationDepth,
        self_correction: bool,
        on_change: Callable[[StageTracker], None] | None = None,
    ) -> StageTracker:
        """Create a tracker with every stage pending."""
        specs = stage_template(mode, depth, self_correction)
        return cls([spec.new() for spec in specs], on_change=on_change)

    @property
    def stages(self) -> list[Stage]:
        """Snapshot of the stages (copies, safe to hand to a renderer)."""
        return [replace(stage) for stage in self._stages]

    @property
    def names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    def __len__(self) -> int:
        return len(self._stages)

    def index_of(self, name: str) -> int:
        """Position of a stage by name."""
        return self.names.index(name)

    @property
    def active_stage(self) -> Stage | None:
        for stage in self._stages:
            if stage.status == StageStatus.ACTIVE:
                return replace(stage)
        return None

    def advance(self, index: int) -> None:
        """Make stage ``index`` active; earlier stages completed, later pending."""
        self._set(index, StageStatus.ACTIVE)

    def complete(self, index: int) -> None:
        """Mark stage ``index`` and every earlier stage completed."""
        self._set(index, StageStatus.COMPLETED)

    def progress_ratio(self) -> float:
        """Completed stages over (stage count - 1), clamped to [0, 1]."""
        if len(self._stages) <= 1:
            return 0.0
        completed = sum(1 for s in self._stages if s.status == StageStatus.COMPLETED)
        return min(1.0, completed / (len(self._stages) - 1))

    def _set(self, index: int, status: StageStatus) -> None:
        if not 0 <= index < len(self._stages):
            raise IndexError(f"Stage index {index} out of range for {len(self._stages)} stages")

        for i, stage in enumerate(self._stages):
            if i < index:
                stage.status = StageStatus.COMPLETED
            elif i == index:
                stage.status = status
            else:
                stage.status = StageStatus.PENDING

        logger.debug(f"Stage {self._stages[index].name} -> {status.value}")
        if self._on_change is not None:
            self._on_change(self)
