"""Models for progress records, catalog entries and scheduler results."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ProgressStatus(Enum):
    """Learning state of a problem."""
    UNSTARTED = "unstarted"
    LEARNING = "learning"
    MASTERED = "mastered"


class EventType(Enum):
    """Kinds of history events."""
    LEARN = "learn"
    REVIEW = "review"


class Difficulty(Enum):
    """Problem difficulty as reported by the catalog."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Outcome(Enum):
    """Result of a scheduler operation."""
    OK = "ok"
    NOT_FOUND = "not_found"  # Unknown problem id or event date
    INVALID_STATE = "invalid_state"  # Transition not allowed from the current state


@dataclass(frozen=True)
class BilingualText:
    """Text with English and Chinese variants."""
    en: str = ""
    zh: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"en": self.en, "zh": self.zh}


@dataclass(frozen=True)
class Event:
    """A learn or review occurrence, tagged with the plan active at the time."""
    date: datetime
    plan: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "plan": self.plan}


@dataclass
class Solution:
    """A user-written solution attached to a problem."""
    id: str
    title: str
    notes: str = ""
    link: str = ""
    tags: List[str] = field(default_factory=list)
    codes: List[Any] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # Fields this version does not model

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "notes": self.notes,
            "link": self.link,
            "tags": list(self.tags),
            "codes": list(self.codes),
            "createdAt": self.created_at,
        })
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data


@dataclass
class ProgressRecord:
    """Locally owned scheduling and solutions state for one problem."""
    id: str
    status: ProgressStatus = ProgressStatus.UNSTARTED
    review_cycle_index: int = 0
    next_review_date: Optional[date] = None
    learn_history: List[Event] = field(default_factory=list)
    review_history: List[Event] = field(default_factory=list)
    solutions: List[Solution] = field(default_factory=list)
    # Cached display fields
    title: Optional[BilingualText] = None
    slug: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    group_label: Optional[BilingualText] = None

    def history(self, event_type: EventType) -> List[Event]:
        """Get the history list for an event type."""
        if event_type == EventType.LEARN:
            return self.learn_history
        return self.review_history

    @property
    def last_event(self) -> Optional[Event]:
        """Most recent event across learn and review history."""
        events = self.learn_history + self.review_history
        if not events:
            return None
        return max(events, key=lambda event: event.date)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the persisted/exported document form."""
        return {
            "id": self.id,
            "status": self.status.value,
            "reviewCycleIndex": self.review_cycle_index,
            "nextReviewDate": self.next_review_date.isoformat() if self.next_review_date else None,
            "learnHistory": [event.to_dict() for event in self.learn_history],
            "reviewHistory": [event.to_dict() for event in self.review_history],
            "solutions": [solution.to_dict() for solution in self.solutions],
            "title": self.title.to_dict() if self.title else None,
            "slug": self.slug,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "groupLabel": self.group_label.to_dict() if self.group_label else None,
        }


@dataclass(frozen=True)
class CatalogProblem:
    """A problem as listed by a catalog."""
    id: str
    title: BilingualText
    slug: str
    difficulty: Optional[Difficulty]
    group_label: BilingualText


@dataclass(frozen=True)
class CatalogGroup:
    """An ordered group of problems within a catalog."""
    label: BilingualText
    problems: List[CatalogProblem]


@dataclass(frozen=True)
class StudyPlan:
    """A selectable catalog and its display color."""
    slug: str
    accent_color: str

    def to_dict(self) -> Dict[str, str]:
        return {"slug": self.slug, "accentColor": self.accent_color}


@dataclass
class TrackedProblem:
    """A progress record together with the catalog it is shown under."""
    record: ProgressRecord
    catalog_id: Optional[str] = None  # None when only cached metadata is known

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def display_title(self) -> str:
        title = self.record.title
        if title is None:
            return f"Problem {self.record.id}"
        return title.en or title.zh or f"Problem {self.record.id}"


@dataclass
class TransitionResult:
    """Record produced by a scheduler operation and how it went."""
    record: ProgressRecord
    outcome: Outcome = Outcome.OK

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK
