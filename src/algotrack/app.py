"""Main application object wiring the store, catalog and services together."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from algotrack.config import settings
from algotrack.models.base import SessionLocal, init_db
from algotrack.models.progress_models import TrackedProblem
from algotrack.services.backup_service import BackupService
from algotrack.services.catalog_service import CatalogProvider, LeetCodeCatalogProvider
from algotrack.services.progress_service import ProgressService
from algotrack.services.reconciler import ActiveSet, Reconciler
from algotrack.services.store import ProgressStore, SqlProgressStore


class AlgoTrack:
    """Main application class."""

    def __init__(
        self,
        db: Optional[Session] = None,
        provider: Optional[CatalogProvider] = None,
    ):
        """Initialize the application.

        Args:
            db: Database session to use instead of a new ``SessionLocal``.
            provider: Catalog provider to use instead of the LeetCode client.
        """
        self.db = db
        self.provider = provider
        self.store: Optional[ProgressStore] = None
        self.reconciler: Optional[Reconciler] = None
        self.progress: Optional[ProgressService] = None
        self.backup: Optional[BackupService] = None
        self.running = False
        self._owns_db = db is None
        self._owns_provider = provider is None
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            # Initialize database
            if self.db is None:
                init_db()
                self.db = SessionLocal()
            self.logger.info("Database initialized")

            if self.provider is None:
                self.provider = LeetCodeCatalogProvider()

            self.store = SqlProgressStore(self.db)
            self.reconciler = Reconciler(self.provider, self.store)
            self.progress = ProgressService(self.store)
            self.backup = BackupService(self.store)
            self.logger.info("Services created")

            self.running = True

        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the application."""
        try:
            if self.provider is not None and self._owns_provider:
                await self.provider.aclose()
                self.provider = None
                self.logger.info("Catalog client closed")

            if self.db is not None and self._owns_db:
                self.db.close()
                self.db = None
                self.logger.info("Database session closed")
        finally:
            self.running = False

    async def __aenter__(self) -> "AlgoTrack":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def load_plan(self, slug: Optional[str] = None) -> Optional[ActiveSet]:
        """Select a study plan (the default one if omitted) and load it."""
        return await self.reconciler.load_active_set(slug or settings.catalog.default_plan)

    def known_problems(self) -> List[TrackedProblem]:
        """Every problem with stored progress plus the loaded plan."""
        return self.reconciler.all_known_problems()
