"""Tests for the spaced-repetition state machine."""
import random
from datetime import date, timedelta

import pytest

from algotrack.config import settings
from algotrack.models.progress_models import (
    EventType,
    Outcome,
    ProgressRecord,
    ProgressStatus,
)
from algotrack.services.scheduling import (
    compute_next_review_date,
    is_due,
    local_date,
    record_learn,
    record_review,
    retime_event,
    undo_event,
)
from conftest import INTERVALS, at


@pytest.fixture
def learned() -> ProgressRecord:
    """Record learned on 2024-01-01."""
    return record_learn(ProgressRecord(id="1"), "top-100-liked", at("2024-01-01"), INTERVALS).record


@pytest.fixture
def mastered(learned: ProgressRecord) -> ProgressRecord:
    """Record reviewed on 2024-01-02, 2024-01-04 and 2024-01-08."""
    record = learned
    for day in ("2024-01-02", "2024-01-04", "2024-01-08"):
        record = record_review(record, "top-100-liked", at(day), INTERVALS).record
    return record


def assert_consistent(record: ProgressRecord) -> None:
    """Check the invariants every scheduled record keeps."""
    assert len(record.review_history) <= len(INTERVALS)
    assert (record.status == ProgressStatus.MASTERED) == (len(record.review_history) == len(INTERVALS))
    if record.status == ProgressStatus.UNSTARTED:
        assert record.learn_history == []
        assert record.review_history == []
        assert record.next_review_date is None
    if record.status == ProgressStatus.MASTERED:
        assert record.next_review_date is None
    if record.status == ProgressStatus.LEARNING:
        assert record.next_review_date is not None
    if record.review_history:
        assert record.learn_history
        assert record.learn_history[-1].date <= record.review_history[0].date
    assert [event.date for event in record.learn_history] == sorted(event.date for event in record.learn_history)
    assert [event.date for event in record.review_history] == sorted(event.date for event in record.review_history)


def test_learn_fresh_record(learned: ProgressRecord) -> None:
    """Test learning schedules the first review."""
    assert learned.status == ProgressStatus.LEARNING
    assert learned.review_cycle_index == 0
    assert learned.next_review_date == date(2024, 1, 2)
    assert learned.learn_history[0].plan == "top-100-liked"
    assert learned.review_history == []


def test_review_advances_cycle(learned: ProgressRecord) -> None:
    """Test a review moves to the next interval."""
    result = record_review(learned, None, at("2024-01-02"), INTERVALS)

    assert result.ok
    assert result.record.review_cycle_index == 1
    assert result.record.next_review_date == date(2024, 1, 4)


def test_last_review_masters(mastered: ProgressRecord) -> None:
    """Test the last interval masters the problem."""
    assert mastered.status == ProgressStatus.MASTERED
    assert mastered.review_cycle_index == len(INTERVALS)
    assert mastered.next_review_date is None
    assert len(mastered.review_history) == len(INTERVALS)


def test_undo_last_review_of_mastered(mastered: ProgressRecord) -> None:
    """Test undoing the mastering review goes back to learning."""
    result = undo_event(mastered, EventType.REVIEW, at("2024-01-08"), INTERVALS)

    assert result.ok
    assert result.record.status == ProgressStatus.LEARNING
    assert result.record.review_cycle_index == 2
    # Latest remaining event is the 2024-01-04 review
    assert result.record.next_review_date == date(2024, 1, 4) + timedelta(days=INTERVALS[2])


def test_undo_only_learn_cascades(mastered: ProgressRecord) -> None:
    """Test removing the only learn event resets the record."""
    result = undo_event(mastered, EventType.LEARN, at("2024-01-01"), INTERVALS)

    assert result.ok
    assert result.record.status == ProgressStatus.UNSTARTED
    assert result.record.learn_history == []
    assert result.record.review_history == []
    assert result.record.review_cycle_index == 0
    assert result.record.next_review_date is None


def test_undo_one_of_several_learns_keeps_reviews(learned: ProgressRecord) -> None:
    """Test removing one learn event when another remains."""
    record = record_review(learned, None, at("2024-01-02"), INTERVALS).record
    relearned = record_learn(record, None, at("2024-01-03"), INTERVALS).record
    reviewed = record_review(relearned, None, at("2024-01-04"), INTERVALS).record

    result = undo_event(reviewed, EventType.LEARN, at("2024-01-01"), INTERVALS)

    assert result.ok
    assert len(result.record.learn_history) == 1
    assert len(result.record.review_history) == 1
    assert result.record.review_cycle_index == 1
    assert result.record.next_review_date == date(2024, 1, 6)


def test_undo_missing_event(learned: ProgressRecord) -> None:
    """Test undoing an event that does not exist."""
    result = undo_event(learned, EventType.REVIEW, at("2024-01-05"), INTERVALS)

    assert result.outcome == Outcome.NOT_FOUND
    assert result.record is learned


def test_review_requires_learning() -> None:
    """Test reviews are rejected unless the problem is being learned."""
    record = ProgressRecord(id="1")
    result = record_review(record, None, at("2024-01-02"), INTERVALS)

    assert result.outcome == Outcome.INVALID_STATE
    assert result.record is record


def test_review_of_mastered_rejected(mastered: ProgressRecord) -> None:
    """Test a mastered problem cannot be reviewed again."""
    result = record_review(mastered, None, at("2024-01-20"), INTERVALS)

    assert result.outcome == Outcome.INVALID_STATE
    assert len(result.record.review_history) == len(INTERVALS)


def test_relearn_mastered_starts_over(mastered: ProgressRecord) -> None:
    """Test learning a mastered problem starts a fresh pass."""
    result = record_learn(mastered, "leetcode-75", at("2024-02-01"), INTERVALS)

    assert result.ok
    assert result.record.status == ProgressStatus.LEARNING
    assert result.record.review_cycle_index == 0
    assert result.record.review_history == []
    assert len(result.record.learn_history) == 2
    assert result.record.next_review_date == date(2024, 2, 2)


def test_retime_keeps_cycle_index(learned: ProgressRecord) -> None:
    """Test moving a review only changes the schedule."""
    reviewed = record_review(learned, None, at("2024-01-02"), INTERVALS).record

    result = retime_event(reviewed, EventType.REVIEW, at("2024-01-02"), at("2024-01-03"), INTERVALS)

    assert result.ok
    assert result.record.review_cycle_index == reviewed.review_cycle_index
    assert result.record.review_history[0].date == at("2024-01-03")
    assert result.record.next_review_date == date(2024, 1, 5)


def test_retime_mastered_keeps_no_next_date(mastered: ProgressRecord) -> None:
    """Test retiming a mastered record does not schedule a review."""
    result = retime_event(mastered, EventType.REVIEW, at("2024-01-08"), at("2024-01-09"), INTERVALS)

    assert result.ok
    assert result.record.status == ProgressStatus.MASTERED
    assert result.record.next_review_date is None


def test_retime_reorders_history(learned: ProgressRecord) -> None:
    """Test history stays sorted after moving an event past another."""
    record = record_review(learned, None, at("2024-01-02"), INTERVALS).record
    record = record_review(record, None, at("2024-01-04"), INTERVALS).record

    result = retime_event(record, EventType.REVIEW, at("2024-01-02"), at("2024-01-05"), INTERVALS)

    assert [event.date for event in result.record.review_history] == [at("2024-01-04"), at("2024-01-05")]
    assert result.record.next_review_date == date(2024, 1, 5) + timedelta(days=INTERVALS[2])


def test_retime_review_before_learn_rejected(learned: ProgressRecord) -> None:
    """Test a review cannot be moved before the first learn event."""
    reviewed = record_review(learned, None, at("2024-01-02"), INTERVALS).record

    result = retime_event(reviewed, EventType.REVIEW, at("2024-01-02"), at("2023-12-31"), INTERVALS)

    assert result.outcome == Outcome.INVALID_STATE
    assert result.record is reviewed


def test_retime_learn_after_review_rejected(learned: ProgressRecord) -> None:
    """Test a learn event cannot be moved past the first review."""
    reviewed = record_review(learned, None, at("2024-01-02"), INTERVALS).record

    result = retime_event(reviewed, EventType.LEARN, at("2024-01-01"), at("2024-01-03"), INTERVALS)

    assert result.outcome == Outcome.INVALID_STATE
    assert result.record is reviewed


def test_retime_missing_event(learned: ProgressRecord) -> None:
    """Test retiming an unknown event."""
    result = retime_event(learned, EventType.LEARN, at("2024-01-05"), at("2024-01-06"), INTERVALS)

    assert result.outcome == Outcome.NOT_FOUND


def test_compute_next_review_date() -> None:
    """Test next date derivation."""
    assert compute_next_review_date(at("2024-01-01"), 0, INTERVALS) == date(2024, 1, 2)
    assert compute_next_review_date(at("2024-01-01"), 2, INTERVALS) == date(2024, 1, 5)
    assert compute_next_review_date(at("2024-01-01"), 3, INTERVALS) is None
    assert compute_next_review_date(None, 0, INTERVALS) is None


def test_dates_follow_configured_timezone(monkeypatch) -> None:
    """Test calendar dates are taken in the configured timezone."""
    monkeypatch.setattr(settings.learning, "timezone", "Asia/Shanghai")
    late_evening = at("2024-01-01", "20:00")

    assert local_date(late_evening) == date(2024, 1, 2)
    result = record_learn(ProgressRecord(id="1"), None, late_evening, INTERVALS)
    assert result.record.next_review_date == date(2024, 1, 3)


def test_is_due(learned: ProgressRecord, mastered: ProgressRecord) -> None:
    """Test due checks."""
    assert not is_due(learned, date(2024, 1, 1))
    assert is_due(learned, date(2024, 1, 2))
    assert is_due(learned, date(2024, 1, 10))
    assert not is_due(mastered, date(2024, 3, 1))


def test_random_operations_keep_invariants() -> None:
    """Test random operation sequences never break record invariants."""
    rng = random.Random(20240101)
    for _ in range(50):
        record = ProgressRecord(id="1")
        moment = at("2024-01-01")
        for _ in range(30):
            moment += timedelta(hours=rng.randint(1, 72))
            operation = rng.choice(["learn", "review", "review", "undo", "retime"])
            if operation == "learn":
                result = record_learn(record, None, moment, INTERVALS)
            elif operation == "review":
                result = record_review(record, None, moment, INTERVALS)
            else:
                event_type = rng.choice(list(EventType))
                history = record.history(event_type)
                if not history:
                    continue
                event = rng.choice(history)
                if operation == "undo":
                    result = undo_event(record, event_type, event.date, INTERVALS)
                else:
                    result = retime_event(record, event_type, event.date, moment, INTERVALS)
                    if result.ok:
                        assert result.record.review_cycle_index == record.review_cycle_index
            if result.ok:
                record = result.record
            assert_consistent(record)
