"""Normalization of stored, imported and legacy progress data.

Everything read from the store, an import document or a catalog goes through
``normalize`` before any other code touches it. The function is total: it
fills defaults, coerces legacy shapes and ignores what it does not recognize,
so the rest of the package can rely on every ``ProgressRecord`` field being
present and well typed.
"""
import uuid
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any, List, Optional

from algotrack.models.progress_models import (
    BilingualText,
    Difficulty,
    Event,
    ProgressRecord,
    ProgressStatus,
    Solution,
)

PLACEHOLDER_SOLUTION_TITLE = "Solution"
LEGACY_SOLUTION_TITLE = "Default solution"

# Solution keys handled explicitly; anything else is carried in Solution.extra
_SOLUTION_KEYS = {
    "id", "title", "name", "notes", "text", "link", "url",
    "tags", "codes", "createdAt", "updatedAt",
}


def create_id() -> str:
    """Generate a short unique id for a solution."""
    return uuid.uuid4().hex[:8]


def _pick(raw: Mapping, *keys: str) -> Any:
    """Return the first non-None value among the given keys."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an event timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date from a date, datetime or ISO string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            timestamp = parse_timestamp(value)
            return timestamp.date() if timestamp else None
    return None


def _normalize_events(raw_events: Any) -> List[Event]:
    if not isinstance(raw_events, (list, tuple)):
        return []
    events = []
    for item in raw_events:
        if isinstance(item, Event):
            events.append(item)
            continue
        if isinstance(item, Mapping):
            timestamp = parse_timestamp(item.get("date"))
            plan = item.get("plan")
        else:
            # Legacy histories stored bare timestamps
            timestamp = parse_timestamp(item)
            plan = None
        if timestamp is None:
            continue
        events.append(Event(date=timestamp, plan=str(plan) if plan is not None else None))
    return sorted(events, key=lambda event: event.date)


def _normalize_text(value: Any) -> Optional[BilingualText]:
    if isinstance(value, BilingualText):
        return value
    if isinstance(value, Mapping):
        en = value.get("en")
        zh = value.get("zh")
        if en is None and zh is None:
            return None
        return BilingualText(en=str(en or ""), zh=str(zh or ""))
    if isinstance(value, str) and value:
        return BilingualText(en=value, zh=value)
    return None


def normalize_difficulty(value: Any) -> Optional[Difficulty]:
    """Coerce a difficulty label case-insensitively; unknown labels give None."""
    if isinstance(value, Difficulty):
        return value
    if isinstance(value, str):
        try:
            return Difficulty(value.strip().lower())
        except ValueError:
            return None
    return None


def _normalize_status(value: Any) -> ProgressStatus:
    if isinstance(value, ProgressStatus):
        return value
    try:
        return ProgressStatus(value)
    except ValueError:
        return ProgressStatus.UNSTARTED


def _normalize_index(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _normalize_solution(raw: Any, today: date) -> Optional[Solution]:
    if isinstance(raw, Solution):
        return raw
    if not isinstance(raw, Mapping):
        return None
    solution_id = raw.get("id")
    title = _pick(raw, "title", "name")
    updated_at = raw.get("updatedAt")
    return Solution(
        id=str(solution_id) if solution_id is not None else create_id(),
        title=str(title) if title is not None else PLACEHOLDER_SOLUTION_TITLE,
        notes=str(_pick(raw, "notes", "text") or ""),
        link=str(_pick(raw, "link", "url") or ""),
        tags=_as_list(raw.get("tags")),
        codes=_as_list(raw.get("codes")),
        created_at=str(raw.get("createdAt") or today.isoformat()),
        updated_at=str(updated_at) if updated_at is not None else None,
        extra={key: value for key, value in raw.items() if key not in _SOLUTION_KEYS},
    )


def _normalize_solutions(raw: Mapping, today: date) -> List[Solution]:
    solutions = [
        solution
        for solution in (_normalize_solution(item, today) for item in _as_list(raw.get("solutions")))
        if solution is not None
    ]
    if not solutions and (raw.get("solutionText") or raw.get("solutionLink")):
        created = parse_date(raw.get("startDate")) or today
        solutions.append(Solution(
            id=create_id(),
            title=LEGACY_SOLUTION_TITLE,
            notes=str(raw.get("solutionText") or ""),
            link=str(raw.get("solutionLink") or ""),
            created_at=created.isoformat(),
        ))
    return solutions


def normalize(raw: Any, problem_id: Optional[Any] = None, today: Optional[date] = None) -> ProgressRecord:
    """Convert a loosely shaped record into a canonical ProgressRecord.

    Args:
        raw: A stored or imported document, a legacy record, a ProgressRecord,
            or anything else (treated as an empty record).
        problem_id: Id to use when the document does not carry one.
        today: Date used for solution timestamps that are missing.
    """
    if isinstance(raw, ProgressRecord):
        raw = raw.to_document()
    if not isinstance(raw, Mapping):
        raw = {}
    today = today or date.today()

    record_id = raw.get("id")
    if record_id is None:
        record_id = problem_id
    return ProgressRecord(
        id=str(record_id) if record_id is not None else "",
        status=_normalize_status(raw.get("status")),
        review_cycle_index=_normalize_index(_pick(raw, "reviewCycleIndex", "review_cycle_index")),
        next_review_date=parse_date(_pick(raw, "nextReviewDate", "next_review_date")),
        learn_history=_normalize_events(_pick(raw, "learnHistory", "learn_history")),
        review_history=_normalize_events(_pick(raw, "reviewHistory", "review_history")),
        solutions=_normalize_solutions(raw, today),
        title=_normalize_text(_pick(raw, "title", "name")),
        slug=str(raw["slug"]) if raw.get("slug") else None,
        difficulty=normalize_difficulty(raw.get("difficulty")),
        group_label=_normalize_text(_pick(raw, "groupLabel", "group_label", "groupName")),
    )
