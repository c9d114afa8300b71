"""Merge of the selected catalog with locally stored progress."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from algotrack.models.progress_models import CatalogGroup, CatalogProblem, TrackedProblem
from algotrack.services.catalog_service import CatalogProvider, CatalogUnavailableError
from algotrack.services.normalizer import normalize
from algotrack.services.store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class ActiveGroup:
    """A catalog group with its problems merged with stored progress."""
    group: CatalogGroup
    problems: List[TrackedProblem]


@dataclass
class ActiveSet:
    """The selected catalog merged with stored progress."""
    catalog_id: str
    groups: List[ActiveGroup]

    @property
    def problems(self) -> List[TrackedProblem]:
        return [problem for group in self.groups for problem in group.problems]


def _metadata_document(problem: CatalogProblem) -> Dict[str, Any]:
    return {
        "id": problem.id,
        "title": problem.title.to_dict(),
        "slug": problem.slug,
        "difficulty": problem.difficulty.value if problem.difficulty else None,
        "groupLabel": problem.group_label.to_dict(),
    }


class Reconciler:
    """Builds the active working set and the view of every known problem."""

    def __init__(self, provider: CatalogProvider, store: ProgressStore):
        """Initialize the reconciler with a catalog provider and a progress store."""
        self.provider = provider
        self.store = store
        self.selected_catalog: Optional[str] = None
        self._generation = 0
        self._active: Optional[ActiveSet] = None

    @property
    def active_set(self) -> Optional[ActiveSet]:
        """The last successfully loaded active set."""
        return self._active

    async def load_active_set(self, catalog_id: str) -> Optional[ActiveSet]:
        """Select a catalog, fetch it and merge it with stored progress.

        Returns None when a newer selection was made while this fetch was in
        flight; the stale result or failure is discarded. Other fetch
        failures propagate and leave the previous active set in place.
        """
        self._generation += 1
        generation = self._generation
        self.selected_catalog = catalog_id

        try:
            groups = await self.provider.fetch_catalog(catalog_id)
        except CatalogUnavailableError as e:
            if generation != self._generation:
                logger.info(f"Ignoring failure of catalog {catalog_id} ({e}); {self.selected_catalog} was selected meanwhile")
                return None
            raise
        if generation != self._generation:
            logger.info(f"Discarding catalog {catalog_id}; {self.selected_catalog} was selected meanwhile")
            return None

        # Refresh cached display fields without touching scheduling or solutions
        self.store.upsert_metadata(
            _metadata_document(problem) for group in groups for problem in group.problems
        )
        active = self._merge(catalog_id, groups, self.store.get_all())
        self._active = active
        logger.info(f"Loaded catalog {catalog_id} with {len(active.problems)} problems")
        return active

    def _merge(
        self,
        catalog_id: str,
        groups: List[CatalogGroup],
        stored: Dict[str, Dict[str, Any]],
    ) -> ActiveSet:
        return ActiveSet(
            catalog_id=catalog_id,
            groups=[
                ActiveGroup(
                    group=group,
                    problems=[self._track(problem, stored.get(problem.id), catalog_id) for problem in group.problems],
                )
                for group in groups
            ],
        )

    def _track(
        self,
        problem: CatalogProblem,
        stored: Optional[Dict[str, Any]],
        catalog_id: str,
    ) -> TrackedProblem:
        # Catalog metadata wins for display; progress fields come from the store
        document = dict(stored or {})
        document.update(_metadata_document(problem))
        return TrackedProblem(record=normalize(document), catalog_id=catalog_id)

    def active_problems(self) -> List[TrackedProblem]:
        """Problems of the active catalog with their current stored progress."""
        if self._active is None:
            return []
        active = self._merge(
            self._active.catalog_id,
            [group.group for group in self._active.groups],
            self.store.get_all(),
        )
        return active.problems

    def all_known_problems(self) -> List[TrackedProblem]:
        """Every problem with stored progress, across all catalogs ever loaded.

        Problems of the active catalog carry its live metadata; the others are
        built from the display fields cached when they were last seen.
        """
        stored = self.store.get_all()
        active: Dict[str, CatalogProblem] = {}
        catalog_id = None
        if self._active is not None:
            catalog_id = self._active.catalog_id
            for group in self._active.groups:
                for problem in group.group.problems:
                    active[problem.id] = problem

        known = []
        for problem_id, document in stored.items():
            if problem_id in active:
                known.append(self._track(active[problem_id], document, catalog_id))
            else:
                known.append(TrackedProblem(record=normalize(document, problem_id=problem_id)))
        for problem_id, problem in active.items():
            if problem_id not in stored:
                known.append(self._track(problem, None, catalog_id))
        return known
