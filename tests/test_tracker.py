# tests/test_tracker.py
from types import SimpleNamespace

import pytest

from auction_tracker.backfill import ModelBackfillTracker
from auction_tracker.schemas import BackfillStatus


@pytest.fixture
def tracker(db, clock):
    return ModelBackfillTracker(db, clock=clock)


def car(make, model):
    return SimpleNamespace(make=make, model=model)


def test_unknown_model_needs_backfill(tracker):
    assert tracker.get_state("Porsche", "911") is None
    assert tracker.needs_backfill("Porsche", "911")


def test_pending_then_backfilled(tracker, clock):
    tracker.mark_pending("Porsche", "911")
    assert tracker.get_state("Porsche", "911").status == BackfillStatus.PENDING
    tracker.mark_backfilled("Porsche", "911", 14)
    state = tracker.get_state("Porsche", "911")
    assert state.status == BackfillStatus.BACKFILLED
    assert state.auction_count == 14
    assert state.backfilled_at is not None
    assert not tracker.needs_backfill("Porsche", "911")


def test_backfilled_is_terminal(tracker):
    tracker.mark_backfilled("Porsche", "911", 3)
    tracker.mark_pending("Porsche", "911")
    tracker.mark_failed("Porsche", "911", "HTTP 500")
    state = tracker.get_state("Porsche", "911")
    assert state.status == BackfillStatus.BACKFILLED
    assert state.auction_count == 3
    assert state.error_message is None


def test_failed_model_is_retried(tracker):
    tracker.mark_failed("Ferrari", "360 Modena", "First page failed")
    state = tracker.get_state("Ferrari", "360 Modena")
    assert state.status == BackfillStatus.FAILED
    assert state.error_message == "First page failed"
    assert tracker.needs_backfill("Ferrari", "360 Modena")

    marked = tracker.identify_and_mark_new_models([car("Ferrari", "360 Modena")])
    assert [m.key for m in marked] == [("Ferrari", "360 Modena")]
    state = tracker.get_state("Ferrari", "360 Modena")
    assert state.status == BackfillStatus.PENDING
    assert state.error_message is None


def test_identify_dedupes_and_skips_blank(tracker):
    tracker.mark_backfilled("BMW", "M3", 5)
    marked = tracker.identify_and_mark_new_models([
        car("Porsche", "911"),
        car("Porsche", "911"),
        car(" Porsche ", "911 "),
        car("", "Unknown"),
        car("Lancia", ""),
        car("BMW", "M3"),
    ])
    assert [m.key for m in marked] == [("Porsche", "911")]


def test_pending_models_limit_and_stats(tracker):
    for model in ("911", "944", "968"):
        tracker.mark_pending("Porsche", model)
    tracker.mark_failed("Porsche", "928", "timeout")
    tracker.mark_backfilled("Porsche", "356", 2)

    assert len(tracker.pending_models(limit=2)) == 2
    assert {m.model for m in tracker.pending_models()} == {"911", "944", "968", "928"}

    stats = tracker.stats()
    assert (stats.pending, stats.backfilled, stats.failed, stats.total) == (3, 1, 1, 5)
