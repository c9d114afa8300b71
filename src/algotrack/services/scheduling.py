"""Spaced-repetition state machine for progress records.

The four operations here are the only code that derives ``status``,
``review_cycle_index`` and ``next_review_date``. Each takes a record and
returns a new one wrapped in a ``TransitionResult``; the input record is
never modified and persisting the result is up to the caller.

States move ``unstarted -> learning -> mastered``. A record leaves
``mastered`` only through ``undo_event``.
"""
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from algotrack.config import settings
from algotrack.models.progress_models import (
    Event,
    EventType,
    Outcome,
    ProgressRecord,
    ProgressStatus,
    TransitionResult,
)
from algotrack.services.normalizer import parse_timestamp

logger = logging.getLogger(__name__)


def local_date(moment: datetime) -> date:
    """Calendar date of a timestamp in the configured timezone."""
    return moment.astimezone(ZoneInfo(settings.learning.timezone)).date()


def _intervals(intervals: Optional[Sequence[int]]) -> List[int]:
    if intervals is None:
        return list(settings.learning.review_intervals)
    return list(intervals)


def _sorted(events: List[Event]) -> List[Event]:
    return sorted(events, key=lambda event: event.date)


def _as_aware(moment: datetime) -> datetime:
    return parse_timestamp(moment)


def compute_next_review_date(
    last_event: Optional[datetime],
    review_cycle_index: int,
    intervals: Optional[Sequence[int]] = None,
) -> Optional[date]:
    """Next review date for a cycle position, scheduled from the last event."""
    intervals = _intervals(intervals)
    if last_event is None or review_cycle_index >= len(intervals):
        return None
    return local_date(last_event) + timedelta(days=intervals[review_cycle_index])


def _reschedule(record: ProgressRecord, intervals: List[int]) -> ProgressRecord:
    """Recompute next_review_date from the latest event and current cycle index."""
    if record.status != ProgressStatus.LEARNING:
        return replace(record, next_review_date=None)
    last_event = record.last_event
    return replace(
        record,
        next_review_date=compute_next_review_date(
            last_event.date if last_event else None, record.review_cycle_index, intervals
        ),
    )


def _reset(record: ProgressRecord) -> ProgressRecord:
    return replace(
        record,
        status=ProgressStatus.UNSTARTED,
        review_cycle_index=0,
        next_review_date=None,
        learn_history=[],
        review_history=[],
    )


def _find_event(history: List[Event], moment: datetime) -> Optional[int]:
    for position, event in enumerate(history):
        if event.date == moment:
            return position
    return None


def record_learn(
    record: ProgressRecord,
    catalog_id: Optional[str],
    now: datetime,
    intervals: Optional[Sequence[int]] = None,
) -> TransitionResult:
    """Record that a problem was learned.

    Always permitted. Learning a problem that is already learning or mastered
    starts a fresh pass: the cycle goes back to 0 and the reviews of the
    previous pass are dropped, while every learn event is kept.
    """
    intervals = _intervals(intervals)
    now = _as_aware(now)
    if record.status != ProgressStatus.UNSTARTED:
        logger.info(f"Re-learning problem {record.id} from {record.status.value}; review cycle reset")

    learned = replace(
        record,
        status=ProgressStatus.LEARNING,
        review_cycle_index=0,
        learn_history=_sorted(record.learn_history + [Event(date=now, plan=catalog_id)]),
        review_history=[],
    )
    return TransitionResult(_reschedule(learned, intervals))


def record_review(
    record: ProgressRecord,
    catalog_id: Optional[str],
    now: datetime,
    intervals: Optional[Sequence[int]] = None,
) -> TransitionResult:
    """Record a review; the last review of the table masters the problem."""
    intervals = _intervals(intervals)
    if record.status != ProgressStatus.LEARNING:
        return TransitionResult(record, Outcome.INVALID_STATE)

    now = _as_aware(now)
    review_history = _sorted(record.review_history + [Event(date=now, plan=catalog_id)])
    next_index = record.review_cycle_index + 1
    if next_index >= len(intervals):
        mastered = replace(
            record,
            status=ProgressStatus.MASTERED,
            review_cycle_index=len(intervals),
            next_review_date=None,
            review_history=review_history,
        )
        return TransitionResult(mastered)

    reviewed = replace(record, review_cycle_index=next_index, review_history=review_history)
    return TransitionResult(_reschedule(reviewed, intervals))


def undo_event(
    record: ProgressRecord,
    event_type: EventType,
    event_date: datetime,
    intervals: Optional[Sequence[int]] = None,
) -> TransitionResult:
    """Remove the event with the exact given date from a history.

    Removing the only learn event resets the record to unstarted and drops
    every review, since reviews cannot exist without a learn event. Removing
    a review steps the cycle back by one and reschedules from the latest
    remaining event.
    """
    intervals = _intervals(intervals)
    history = record.history(event_type)
    position = _find_event(history, _as_aware(event_date))
    if position is None:
        return TransitionResult(record, Outcome.NOT_FOUND)
    remaining = history[:position] + history[position + 1:]

    if event_type == EventType.LEARN:
        if not remaining:
            return TransitionResult(_reset(record))
        return TransitionResult(_reschedule(replace(record, learn_history=remaining), intervals))

    if not record.learn_history:
        # Reviews without a learn event are orphans; nothing to step back to
        return TransitionResult(_reset(record))
    undone = replace(
        record,
        status=ProgressStatus.LEARNING,
        review_cycle_index=max(0, record.review_cycle_index - 1),
        review_history=remaining,
    )
    return TransitionResult(_reschedule(undone, intervals))


def retime_event(
    record: ProgressRecord,
    event_type: EventType,
    old_date: datetime,
    new_date: datetime,
    intervals: Optional[Sequence[int]] = None,
) -> TransitionResult:
    """Move a history event to a new timestamp.

    The cycle index is left alone; only the history order and the date the
    next review is scheduled from can change. Reviews belong to the latest
    learn pass, so a move that leaves any learn event after the first review
    is refused: the record is returned unchanged with ``INVALID_STATE``.
    """
    intervals = _intervals(intervals)
    history = record.history(event_type)
    position = _find_event(history, _as_aware(old_date))
    if position is None:
        return TransitionResult(record, Outcome.NOT_FOUND)

    moved = list(history)
    moved[position] = replace(history[position], date=_as_aware(new_date))
    field_name = "learn_history" if event_type == EventType.LEARN else "review_history"
    retimed = replace(record, **{field_name: _sorted(moved)})

    if retimed.learn_history and retimed.review_history:
        if retimed.learn_history[-1].date > retimed.review_history[0].date:
            return TransitionResult(record, Outcome.INVALID_STATE)
    return TransitionResult(_reschedule(retimed, intervals))


def is_due(record: ProgressRecord, on: date) -> bool:
    """Whether a learning record is due for review on the given day."""
    return (
        record.status == ProgressStatus.LEARNING
        and record.next_review_date is not None
        and record.next_review_date <= on
    )
