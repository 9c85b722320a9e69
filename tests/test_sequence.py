from __future__ import annotations

from flightlink.processing.sequence import SequenceTracker


def test_gap_counts_lost_packets() -> None:
    tracker = SequenceTracker()
    tracker.observe("rocket", 41)
    seen = tracker.observe("rocket", 45)

    assert seen.lost == 3
    assert seen.last_id == 41
    assert tracker.last_seen("rocket") == 45
    assert tracker.total_lost("rocket") == 3


def test_first_packet_and_consecutive_ids() -> None:
    tracker = SequenceTracker()
    assert tracker.observe("cansat", 7).lost == 0
    assert tracker.observe("cansat", 8).lost == 0
    assert tracker.total_lost("cansat") == 0


def test_duplicate_or_regression_advances_without_loss() -> None:
    tracker = SequenceTracker()
    tracker.observe("rocket", 10)
    tracker.observe("rocket", 12)

    seen = tracker.observe("rocket", 3)

    assert seen.lost == 0
    assert seen.total_lost == 1
    assert tracker.last_seen("rocket") == 3


def test_devices_are_independent_and_resettable() -> None:
    tracker = SequenceTracker()
    tracker.observe("rocket", 1)
    tracker.observe("rocket", 5)
    tracker.observe("cansat", 100)

    tracker.reset("rocket")

    assert tracker.last_seen("rocket") is None
    assert tracker.total_lost("rocket") == 0
    assert tracker.last_seen("cansat") == 100
