"""Tests for stage-weighted progress aggregation."""

import pytest

from scenecut.core.progress import DEFAULT_STAGES, ProgressAggregator, Stage

pytestmark = [pytest.mark.fast]


def test_default_stages_cover_full_range():
    """Default stages are contiguous from 0 to 100."""
    assert DEFAULT_STAGES[0].start == 0
    assert DEFAULT_STAGES[-1].end == 100
    for prev, nxt in zip(DEFAULT_STAGES, DEFAULT_STAGES[1:]):
        assert prev.end == nxt.start


@pytest.mark.parametrize(
    "stages",
    [
        [Stage("a", 0, 50), Stage("b", 60, 100)],
        [Stage("a", 0, 60), Stage("b", 50, 100)],
        [Stage("a", 0, 50), Stage("b", 50, 90)],
        [Stage("a", 0, 50), Stage("a", 50, 100)],
        [Stage("a", 0, 0), Stage("b", 0, 100)],
        [],
    ],
)
def test_invalid_stage_layouts_rejected(stages):
    """Gaps, overlaps, short coverage, duplicates and empty ranges raise ValueError."""
    with pytest.raises(ValueError):
        ProgressAggregator(stages)


def test_update_projects_into_stage_range():
    """global = start + local * span, with local clamped to [0, 1]."""
    events = []
    progress = ProgressAggregator(listeners=[events.append])
    assert progress.update("analyze", 0.5) == pytest.approx(20.0)
    assert progress.update("extract", 1.7) == pytest.approx(80.0)
    assert progress.update("extract", -0.3) == pytest.approx(30.0)
    assert events[0].stage == "analyze"
    assert events[0].local == 0.5
    assert events[0].message == "Analyzing cut changes"


def test_unknown_stage_raises_key_error():
    """Updating an undefined stage is an error."""
    with pytest.raises(KeyError):
        ProgressAggregator().update("upload", 0.5)


def test_reporter_binds_stage():
    """reporter(stage) returns a callable for inner components."""
    events = []
    progress = ProgressAggregator(listeners=[events.append])
    report = progress.reporter("import")
    report(0.5, "half way")
    assert events[-1].percent == pytest.approx(87.5)
    assert events[-1].message == "half way"


def test_lifecycle_events():
    """start, complete and cancel notify listeners with their kind."""
    events = []
    progress = ProgressAggregator(listeners=[events.append])
    progress.start()
    progress.complete_stage("initialize")
    progress.complete()
    progress.cancel()
    assert [e.kind for e in events] == ["start", "stage_progress", "complete", "cancel"]
    assert events[2].percent == 100.0
    assert not progress.active


def test_batch_tracking():
    """Batch counters ride along on every event once a batch starts."""
    events = []
    progress = ProgressAggregator(listeners=[events.append])
    progress.start_batch(2)
    progress.complete_batch_item()
    progress.complete_batch_item()
    progress.complete_batch_item()
    assert progress.batch_current == 2
    assert events[-1].batch_current == 2
    assert events[-1].batch_total == 2
