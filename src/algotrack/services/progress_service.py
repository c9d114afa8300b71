"""Service applying scheduler operations and solution edits to stored records."""
import logging
import threading
import weakref
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any, Callable, List, Optional, Sequence

from algotrack.config import settings
from algotrack.models.progress_models import (
    EventType,
    Outcome,
    ProgressRecord,
    Solution,
    TransitionResult,
)
from algotrack.monitoring import transitions
from algotrack.services.normalizer import create_id, normalize
from algotrack.services.scheduling import is_due, record_learn, record_review, retime_event, undo_event
from algotrack.services.store import ProgressStore

logger = logging.getLogger(__name__)

# Solution attributes that callers may edit
EDITABLE_SOLUTION_FIELDS = {"title", "notes", "link", "tags", "codes"}


class ProgressService:
    """Read-modify-write of progress records, serialized per problem id."""

    def __init__(self, store: ProgressStore, intervals: Optional[Sequence[int]] = None):
        """Initialize the service with a progress store."""
        self.store = store
        self.intervals = list(intervals) if intervals is not None else list(settings.learning.review_intervals)
        # An id's lock lives only while some caller holds it
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock(self, problem_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(str(problem_id))
            if lock is None:
                lock = threading.Lock()
                self._locks[str(problem_id)] = lock
            return lock

    def _load(self, problem_id: str) -> Optional[ProgressRecord]:
        document = self.store.get(str(problem_id))
        if document is None:
            return None
        return normalize(document, problem_id=problem_id)

    def _apply(
        self,
        operation: str,
        problem_id: str,
        transition: Callable[[ProgressRecord], TransitionResult],
    ) -> TransitionResult:
        """Run one scheduler operation and persist its result if it applied."""
        with self._lock(problem_id):
            record = self._load(problem_id)
            if record is None:
                transitions.labels(operation=operation, outcome=Outcome.NOT_FOUND.value).inc()
                logger.warning(f"Cannot {operation} problem {problem_id}: not found")
                return TransitionResult(normalize({}, problem_id=problem_id), Outcome.NOT_FOUND)

            result = transition(record)
            transitions.labels(operation=operation, outcome=result.outcome.value).inc()
            if not result.ok:
                logger.warning(
                    f"Cannot {operation} problem {problem_id} ({record.status.value}): {result.outcome.value}"
                )
                return result

            # StoreError propagates; the caller must not assume the write applied
            self.store.put(result.record.to_document())
            logger.info(
                f"Problem {problem_id}: {operation} -> {result.record.status.value}, "
                f"cycle {result.record.review_cycle_index}, next review {result.record.next_review_date}"
            )
            return result

    def learn(self, problem_id: str, catalog_id: Optional[str] = None, now: Optional[datetime] = None) -> TransitionResult:
        """Record that a problem was learned."""
        now = now or datetime.now(UTC)
        return self._apply(
            "learn", problem_id, lambda record: record_learn(record, catalog_id, now, self.intervals)
        )

    def review(self, problem_id: str, catalog_id: Optional[str] = None, now: Optional[datetime] = None) -> TransitionResult:
        """Record a review of a problem that is being learned."""
        now = now or datetime.now(UTC)
        return self._apply(
            "review", problem_id, lambda record: record_review(record, catalog_id, now, self.intervals)
        )

    def undo(self, problem_id: str, event_type: EventType, event_date: datetime) -> TransitionResult:
        """Remove a history event."""
        return self._apply(
            "undo", problem_id, lambda record: undo_event(record, event_type, event_date, self.intervals)
        )

    def retime(
        self,
        problem_id: str,
        event_type: EventType,
        old_date: datetime,
        new_date: datetime,
    ) -> TransitionResult:
        """Move a history event to a new timestamp."""
        return self._apply(
            "retime",
            problem_id,
            lambda record: retime_event(record, event_type, old_date, new_date, self.intervals),
        )

    def add_solution(
        self,
        problem_id: str,
        title: str,
        notes: str = "",
        link: str = "",
        tags: Optional[List[str]] = None,
        codes: Optional[List[Any]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Solution]:
        """Add a solution in front of the existing ones."""
        timestamp = (now or datetime.now(UTC)).isoformat()
        with self._lock(problem_id):
            record = self._load(problem_id)
            if record is None:
                logger.warning(f"Cannot add solution to problem {problem_id}: not found")
                return None
            solution = Solution(
                id=create_id(),
                title=title,
                notes=notes,
                link=link,
                tags=list(tags or []),
                codes=list(codes or []),
                created_at=timestamp,
                updated_at=timestamp,
            )
            self.store.put(replace(record, solutions=[solution] + record.solutions).to_document())
            return solution

    def update_solution(
        self,
        problem_id: str,
        solution_id: str,
        now: Optional[datetime] = None,
        **changes: Any,
    ) -> Optional[Solution]:
        """Update editable fields of a solution."""
        unknown = set(changes) - EDITABLE_SOLUTION_FIELDS
        if unknown:
            raise ValueError(f"Solution fields cannot be edited: {', '.join(sorted(unknown))}")
        timestamp = (now or datetime.now(UTC)).isoformat()
        with self._lock(problem_id):
            record = self._load(problem_id)
            if record is None:
                return None
            updated = None
            solutions = []
            for solution in record.solutions:
                if solution.id == solution_id:
                    solution = updated = replace(solution, updated_at=timestamp, **changes)
                solutions.append(solution)
            if updated is None:
                logger.warning(f"Solution {solution_id} not found on problem {problem_id}")
                return None
            self.store.put(replace(record, solutions=solutions).to_document())
            return updated

    def delete_solution(self, problem_id: str, solution_id: str) -> bool:
        """Delete a solution; returns False if it does not exist."""
        with self._lock(problem_id):
            record = self._load(problem_id)
            if record is None:
                return False
            solutions = [solution for solution in record.solutions if solution.id != solution_id]
            if len(solutions) == len(record.solutions):
                return False
            self.store.put(replace(record, solutions=solutions).to_document())
            return True

    def clear_progress(self) -> int:
        """Reset scheduling of every stored problem, keeping solutions."""
        count = self.store.reset_progress()
        logger.warning(f"Cleared learning progress of {count} problems")
        return count

    def due_problems(self, today: date) -> List[ProgressRecord]:
        """Stored records due for review on a given day, most overdue first."""
        records = [
            normalize(document, problem_id=problem_id)
            for problem_id, document in self.store.get_all().items()
        ]
        due = [record for record in records if is_due(record, today)]
        return sorted(due, key=lambda record: (record.next_review_date, record.id))
