"""
Stage Tracker Tests

Tests for stage templates, forward-only status updates and progress.
"""

import itertools

import pytest

from chorus.orchestration.models import GenerationDepth, ResearchMode, Stage, StageStatus
from chorus.orchestration.stages import StageTracker, stage_template

FULL_OFFLINE = ["history", "brainstorm", "refine", "synthesize", "critique"]
FULL_SEARCH = ["history", "search", "brainstorm", "refine", "synthesize", "critique"]


def _statuses(tracker: StageTracker) -> list[StageStatus]:
    return [s.status for s in tracker.stages]


def _tracker(count: int) -> StageTracker:
    return StageTracker([Stage(name=f"s{i}", label=f"Stage {i}", icon="bot") for i in range(count)])


def test_template_combinations():
    """Every mode/depth/self-correction combination yields the fixed stage list."""
    print("=" * 60)
    print("TEST 1: Stage templates for all combinations")
    print("=" * 60)

    for mode, depth, self_correction in itertools.product(
        ResearchMode, GenerationDepth, (True, False)
    ):
        names = StageTracker.build(mode, depth, self_correction).names

        if depth == GenerationDepth.FAST:
            expected = ["generate"]
        else:
            expected = list(FULL_OFFLINE if mode == ResearchMode.OFFLINE else FULL_SEARCH)
            if not self_correction:
                expected.remove("critique")

        print(f"  {mode.value:8s} {depth.value:9s} critique={self_correction!s:5s} -> {names}")
        assert names == expected

    print("\n[PASS] All 18 combinations produce the expected stages")


def test_fast_depth_is_single_stage():
    for mode in ResearchMode:
        assert len(stage_template(mode, GenerationDepth.FAST, True)) == 1
    print("[PASS] Fast depth always yields one stage")


def test_new_tracker_is_all_pending():
    tracker = StageTracker.build(ResearchMode.WEB, GenerationDepth.DEEP, True)
    assert set(_statuses(tracker)) == {StageStatus.PENDING}
    assert tracker.active_stage is None
    print("[PASS] New tracker starts pending")


def test_advance_sets_left_completed_right_pending():
    """Advancing marks earlier stages completed and later stages pending."""
    print("\n" + "=" * 60)
    print("TEST 2: advance() semantics")
    print("=" * 60)

    tracker = _tracker(5)
    tracker.advance(2)
    assert _statuses(tracker) == [
        StageStatus.COMPLETED,
        StageStatus.COMPLETED,
        StageStatus.ACTIVE,
        StageStatus.PENDING,
        StageStatus.PENDING,
    ]
    assert tracker.active_stage.name == "s2"

    # Moving to a later stage never leaves an earlier one active
    tracker.advance(4)
    assert _statuses(tracker)[:4] == [StageStatus.COMPLETED] * 4
    print("[PASS] advance() is forward-only and left-to-right")


def test_advance_is_idempotent():
    once = _tracker(4)
    once.advance(2)

    twice = _tracker(4)
    twice.advance(2)
    twice.advance(2)

    assert _statuses(once) == _statuses(twice)
    print("[PASS] advance(2) twice == advance(2) once")


def test_complete_marks_stage_and_earlier():
    tracker = _tracker(3)
    tracker.advance(1)
    tracker.complete(1)
    assert _statuses(tracker) == [
        StageStatus.COMPLETED,
        StageStatus.COMPLETED,
        StageStatus.PENDING,
    ]


def test_out_of_range_index_is_an_error():
    tracker = _tracker(3)
    with pytest.raises(IndexError):
        tracker.advance(3)
    with pytest.raises(IndexError):
        tracker.complete(-1)
    print("[PASS] Out-of-range indexes raise IndexError")


def test_empty_stage_list_rejected():
    with pytest.raises(ValueError):
        StageTracker([])


def test_progress_ratio():
    """Completed stages over (n - 1), zero for a single stage."""
    print("\n" + "=" * 60)
    print("TEST 3: progress_ratio()")
    print("=" * 60)

    single = _tracker(1)
    assert single.progress_ratio() == 0.0
    single.complete(0)
    assert single.progress_ratio() == 0.0

    three = _tracker(3)
    assert three.progress_ratio() == 0.0
    three.complete(0)
    print(f"  3 stages, 1 completed -> {three.progress_ratio()}")
    assert three.progress_ratio() == 0.5

    three.complete(2)
    assert three.progress_ratio() == 1.0
    print("[PASS] progress_ratio matches completed/(n-1), clamped to 1")


def test_observer_called_on_every_change():
    seen = []
    tracker = StageTracker.build(
        ResearchMode.OFFLINE,
        GenerationDepth.BALANCED,
        False,
        on_change=lambda t: seen.append(t.active_stage.name if t.active_stage else None),
    )
    tracker.advance(0)
    tracker.complete(0)
    tracker.advance(1)
    assert seen == ["history", None, "brainstorm"]


def test_stages_property_returns_copies():
    tracker = _tracker(2)
    snapshot = tracker.stages
    snapshot[0].status = StageStatus.COMPLETED
    assert tracker.stages[0].status == StageStatus.PENDING


def main():
    """Run all tests."""
    print("\n" + "=" * 60)
    print("STAGE TRACKER TESTS")
    print("=" * 60)

    test_template_combinations()
    test_fast_depth_is_single_stage()
    test_new_tracker_is_all_pending()
    test_advance_sets_left_completed_right_pending()
    test_advance_is_idempotent()
    test_complete_marks_stage_and_earlier()
    test_out_of_range_index_is_an_error()
    test_empty_stage_list_rejected()
    test_progress_ratio()
    test_observer_called_on_every_change()
    test_stages_property_returns_copies()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
