"""Bulk export and import of progress data."""
import json
import logging
from collections.abc import Mapping
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Union

from algotrack.models.models import METADATA_FIELDS, SCHEDULING_FIELDS, SOLUTION_FIELDS
from algotrack.monitoring import backups
from algotrack.services.normalizer import normalize
from algotrack.services.store import ProgressStore

logger = logging.getLogger(__name__)


class BackupScope(Enum):
    """Which part of the progress data a backup covers."""
    ALL = "all"
    RECORDS = "records"  # Everything except solutions
    SOLUTIONS = "solutions"


FILENAME_SUFFIXES = {
    BackupScope.ALL: "backup",
    BackupScope.RECORDS: "records",
    BackupScope.SOLUTIONS: "solutions",
}


class ImportValidationError(ValueError):
    """An import document does not have the expected shape."""


def backup_filename(scope: BackupScope, today: date) -> str:
    """File name for an export taken on a given day."""
    return f"algorithm-tracker-{FILENAME_SUFFIXES[scope]}-{today.strftime('%Y%m%d')}.json"


class BackupService:
    """Service for exporting and importing the progress store."""

    def __init__(self, store: ProgressStore):
        """Initialize the service with a progress store."""
        self.store = store

    def export_document(self, scope: BackupScope = BackupScope.ALL) -> Dict[str, Dict[str, Any]]:
        """Build an export document mapping problem id to its (partial) record."""
        exported = {}
        for problem_id, stored in self.store.get_all().items():
            document = normalize(stored, problem_id=problem_id).to_document()
            if scope == BackupScope.ALL:
                exported[problem_id] = document
            elif scope == BackupScope.RECORDS:
                document.pop("solutions")
                exported[problem_id] = document
            elif document["solutions"]:
                exported[problem_id] = {"id": problem_id, "solutions": document["solutions"]}
        backups.labels(direction="export", scope=scope.value).inc()
        logger.info(f"Exported {len(exported)} problems ({scope.value})")
        return exported

    def export_json(self, scope: BackupScope = BackupScope.ALL, indent: Optional[int] = None) -> str:
        """Export as JSON text."""
        return json.dumps(self.export_document(scope), ensure_ascii=False, indent=indent)

    def _parse(self, payload: Union[str, bytes, Mapping]) -> Mapping:
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise ImportValidationError(f"Import is not valid JSON: {e}") from e
        if not isinstance(payload, Mapping):
            raise ImportValidationError("Import must be an object mapping problem ids to records")
        for key, value in payload.items():
            if not isinstance(value, Mapping):
                raise ImportValidationError(f"Import entry {key} is not an object")
        return payload

    def import_document(
        self,
        payload: Union[str, bytes, Mapping],
        scope: BackupScope = BackupScope.ALL,
        replace: bool = False,
    ) -> int:
        """Import a backup document; returns the number of imported problems.

        The whole document is validated before the store is touched.

        Args:
            payload: JSON text or an already parsed mapping of id -> record.
            scope: ``all`` overwrites whole records; ``records`` clears all
                learning progress, then imports everything except solutions;
                ``solutions`` overwrites only solutions.
            replace: With scope ``all``, drop problems missing from the import.
        """
        entries = self._parse(payload)
        if replace and scope != BackupScope.ALL:
            raise ImportValidationError("Only a full import can replace the store")

        documents = []
        for key, raw in entries.items():
            if scope == BackupScope.SOLUTIONS and raw.get("solutions") is None:
                continue
            record = normalize(raw, problem_id=key)
            if not record.id:
                continue
            documents.append(record.to_document())

        if scope == BackupScope.ALL:
            if replace:
                self.store.replace_all(documents)
            else:
                self.store.put_many(documents)
        elif scope == BackupScope.RECORDS:
            self.store.merge_fields(
                [self._records_document(document) for document in documents],
                list(SCHEDULING_FIELDS) + list(METADATA_FIELDS),
                reset_progress_first=True,
            )
        else:
            self.store.merge_fields(documents, list(SOLUTION_FIELDS))

        backups.labels(direction="import", scope=scope.value).inc()
        logger.info(f"Imported {len(documents)} problems ({scope.value})")
        return len(documents)

    def _records_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        # Cached display fields missing from the import keep their stored values
        records = {"id": document["id"]}
        records.update({key: document[key] for key in SCHEDULING_FIELDS})
        records.update({key: document[key] for key in METADATA_FIELDS if document[key] is not None})
        return records
