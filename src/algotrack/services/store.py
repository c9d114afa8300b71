"""Persisted progress store keyed by problem id."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from algotrack.models.models import ALL_FIELDS, METADATA_FIELDS, ProblemRow
from algotrack.monitoring import store_errors

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class StoreError(Exception):
    """A store operation failed and was rolled back."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"Store {operation} failed: {message}")
        self.operation = operation


class ProgressStore(ABC):
    """Mapping from problem id to progress document.

    Documents use the export form (see ``ProgressRecord.to_document``).
    Every mutating call either applies fully or raises ``StoreError``.
    """

    @abstractmethod
    def get_all(self) -> Dict[str, Document]:
        """Get every stored document keyed by id."""

    @abstractmethod
    def get(self, problem_id: str) -> Optional[Document]:
        """Get one document, or None if the id is unknown."""

    def put(self, document: Document) -> None:
        """Insert or fully overwrite one document."""
        self.put_many([document])

    @abstractmethod
    def put_many(self, documents: Iterable[Document]) -> None:
        """Insert or fully overwrite several documents."""

    @abstractmethod
    def replace_all(self, documents: Iterable[Document]) -> None:
        """Replace the whole store content."""

    @abstractmethod
    def upsert_metadata(self, documents: Iterable[Document]) -> None:
        """Insert missing documents; refresh only cached display fields of existing ones."""

    @abstractmethod
    def reset_progress(self) -> int:
        """Clear scheduling fields of every record, keeping solutions. Returns the count."""

    @abstractmethod
    def merge_fields(
        self,
        documents: Iterable[Document],
        fields: Iterable[str],
        reset_progress_first: bool = False,
    ) -> None:
        """Overwrite only the given document keys, inserting unknown ids."""


class SqlProgressStore(ProgressStore):
    """Progress store backed by the ``problems`` table."""

    def __init__(self, db: Session):
        """Initialize the store with a database session."""
        self.db = db
        # Sessions are not thread safe; one operation at a time
        self._lock = threading.RLock()

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(operation, e)

    def _fail(self, operation: str, error: Exception) -> None:
        self.db.rollback()
        store_errors.labels(operation=operation).inc()
        logger.error(f"Store {operation} rolled back: {error}")
        raise StoreError(operation, str(error)) from error

    def _row(self, problem_id: str) -> Optional[ProblemRow]:
        return self.db.get(ProblemRow, str(problem_id))

    def _row_for(self, document: Document, created: Dict[str, ProblemRow]) -> ProblemRow:
        """Existing row for a document, or a new blank one added to the session."""
        problem_id = str(document["id"])
        row = created.get(problem_id) or self._row(problem_id)
        if row is None:
            row = ProblemRow(id=problem_id, solutions=[])
            row.reset_progress()
            self.db.add(row)
            created[problem_id] = row
        return row

    def _write(self, operation: str, apply) -> None:
        """Apply changes to the session and commit, or roll everything back."""
        try:
            apply()
        except Exception as e:
            self._fail(operation, e)
        self._commit(operation)

    def get_all(self) -> Dict[str, Document]:
        with self._lock:
            try:
                rows = self.db.query(ProblemRow).all()
            except SQLAlchemyError as e:
                self._fail("get_all", e)
            return {row.id: row.to_document() for row in rows}

    def get(self, problem_id: str) -> Optional[Document]:
        with self._lock:
            try:
                row = self._row(problem_id)
            except SQLAlchemyError as e:
                self._fail("get", e)
            return row.to_document() if row else None

    def put_many(self, documents: Iterable[Document]) -> None:
        def apply():
            created = {}
            for document in documents:
                self._row_for(document, created).apply_document(document, ALL_FIELDS)

        with self._lock:
            self._write("put", apply)

    def replace_all(self, documents: Iterable[Document]) -> None:
        def apply():
            self.db.query(ProblemRow).delete(synchronize_session=False)
            self.db.expunge_all()
            created = {}
            for document in documents:
                self._row_for(document, created).apply_document(document, ALL_FIELDS)

        with self._lock:
            self._write("replace_all", apply)

    def upsert_metadata(self, documents: Iterable[Document]) -> None:
        def apply():
            created = {}
            for document in documents:
                self._row_for(document, created).apply_document(document, METADATA_FIELDS)

        with self._lock:
            self._write("upsert_metadata", apply)

    def reset_progress(self) -> int:
        rows = []

        def apply():
            rows.extend(self.db.query(ProblemRow).all())
            for row in rows:
                row.reset_progress()

        with self._lock:
            self._write("reset_progress", apply)
        logger.info(f"Reset progress of {len(rows)} problems")
        return len(rows)

    def merge_fields(
        self,
        documents: Iterable[Document],
        fields: Iterable[str],
        reset_progress_first: bool = False,
    ) -> None:
        keys = list(fields)

        def apply():
            if reset_progress_first:
                for row in self.db.query(ProblemRow).all():
                    row.reset_progress()
            created = {}
            for document in documents:
                self._row_for(document, created).apply_document(document, keys)

        with self._lock:
            self._write("merge_fields", apply)
