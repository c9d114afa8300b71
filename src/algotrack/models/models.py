"""Database models for the progress store."""
import copy
from datetime import date
from typing import Any, Dict, Iterable

from sqlalchemy import JSON, Column, Date, Integer, String

from algotrack.models.base import Base, TimestampMixin

# Document key -> column name, grouped by owner
SCHEDULING_FIELDS = {
    "status": "status",
    "reviewCycleIndex": "review_cycle_index",
    "nextReviewDate": "next_review_date",
    "learnHistory": "learn_history",
    "reviewHistory": "review_history",
}
SOLUTION_FIELDS = {
    "solutions": "solutions",
}
METADATA_FIELDS = {
    "title": "title",
    "slug": "slug",
    "difficulty": "difficulty",
    "groupLabel": "group_label",
}
ALL_FIELDS = {**SCHEDULING_FIELDS, **SOLUTION_FIELDS, **METADATA_FIELDS}


class ProblemRow(Base, TimestampMixin):
    """Progress record of one problem plus its cached display fields."""

    __tablename__ = "problems"

    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="unstarted", index=True)
    review_cycle_index = Column(Integer, nullable=False, default=0)
    next_review_date = Column(Date, nullable=True, index=True)
    learn_history = Column(JSON, nullable=False, default=list)
    review_history = Column(JSON, nullable=False, default=list)
    solutions = Column(JSON, nullable=False, default=list)

    # Cached display fields, last known from a catalog
    title = Column(JSON, nullable=True)
    slug = Column(String, nullable=True, index=True)
    difficulty = Column(String, nullable=True)
    group_label = Column(JSON, nullable=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize the row to its document form."""
        document = {"id": self.id}
        for key, column in ALL_FIELDS.items():
            value = getattr(self, column)
            if isinstance(value, date):
                value = value.isoformat()
            document[key] = copy.deepcopy(value)
        return document

    def apply_document(self, document: Dict[str, Any], keys: Iterable[str]) -> None:
        """Copy the given document keys onto the row."""
        for key in keys:
            if key not in document:
                continue
            value = document[key]
            if key == "nextReviewDate" and isinstance(value, str):
                value = date.fromisoformat(value)
            setattr(self, ALL_FIELDS[key], value)

    def reset_progress(self) -> None:
        """Clear scheduling fields, keeping solutions and cached metadata."""
        self.status = "unstarted"
        self.review_cycle_index = 0
        self.next_review_date = None
        self.learn_history = []
        self.review_history = []
