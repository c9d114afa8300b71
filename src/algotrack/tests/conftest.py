"""Test configuration."""
import asyncio
import os
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional

import pytest
from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parents[3] / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from algotrack.config import ensure_directories
from algotrack.models.base import init_db
from algotrack.models.models import METADATA_FIELDS, SCHEDULING_FIELDS
from algotrack.models.progress_models import (
    BilingualText,
    CatalogGroup,
    CatalogProblem,
    Difficulty,
)
from algotrack.services.catalog_service import CatalogProvider, CatalogUnavailableError
from algotrack.services.store import ProgressStore, SqlProgressStore

fake = Faker()

INTERVALS = [1, 2, 4]


def at(day: str, time: str = "09:00") -> datetime:
    """UTC timestamp on an ISO day."""
    return datetime.fromisoformat(f"{day}T{time}:00").replace(tzinfo=UTC)


def make_group(slug: str, ids: Iterable[str], difficulty: Difficulty = Difficulty.EASY) -> CatalogGroup:
    """Create a catalog group with fake problem titles."""
    label = BilingualText(en=slug, zh=fake.word())
    problems = [
        CatalogProblem(
            id=str(problem_id),
            title=BilingualText(en=fake.sentence(nb_words=3), zh=fake.word()),
            slug=fake.slug(),
            difficulty=difficulty,
            group_label=label,
        )
        for problem_id in ids
    ]
    return CatalogGroup(label=label, problems=problems)


class FakeCatalogProvider(CatalogProvider):
    """In-memory catalog provider; fetches can be held back with gates."""

    def __init__(self, catalogs: Optional[Dict[str, List[CatalogGroup]]] = None):
        self.catalogs = catalogs or {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[str] = []

    async def fetch_catalog(self, slug: str) -> List[CatalogGroup]:
        self.calls.append(slug)
        gate = self.gates.get(slug)
        if gate is not None:
            await gate.wait()
        if slug not in self.catalogs:
            raise CatalogUnavailableError(404, f"Study plan {slug} not found")
        return self.catalogs[slug]

    async def aclose(self) -> None:
        pass


class MemoryProgressStore(ProgressStore):
    """Dict-backed progress store."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get_all(self):
        with self._lock:
            return {key: dict(value) for key, value in self.documents.items()}

    def get(self, problem_id):
        with self._lock:
            document = self.documents.get(str(problem_id))
            return dict(document) if document is not None else None

    def put_many(self, documents):
        with self._lock:
            for document in documents:
                self.documents[str(document["id"])] = dict(document)

    def replace_all(self, documents):
        with self._lock:
            self.documents = {str(document["id"]): dict(document) for document in documents}

    def upsert_metadata(self, documents):
        self.merge_fields(documents, METADATA_FIELDS)

    def reset_progress(self):
        with self._lock:
            for document in self.documents.values():
                document.update(status="unstarted", reviewCycleIndex=0, nextReviewDate=None,
                                learnHistory=[], reviewHistory=[])
            return len(self.documents)

    def merge_fields(self, documents, fields, reset_progress_first=False):
        if reset_progress_first:
            self.reset_progress()
        with self._lock:
            for document in documents:
                stored = self.documents.setdefault(str(document["id"]), {"id": str(document["id"]), "solutions": []})
                for key in fields:
                    if key in document:
                        stored[key] = document[key]
                for key in SCHEDULING_FIELDS:
                    stored.setdefault(key, None)


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    # Ensure test directories exist
    ensure_directories()

    yield


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every connection of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db: Session) -> SqlProgressStore:
    """Create a SQL progress store."""
    return SqlProgressStore(db)


@pytest.fixture
def memory_store() -> MemoryProgressStore:
    """Create a dict-backed progress store."""
    return MemoryProgressStore()


@pytest.fixture
def catalog() -> FakeCatalogProvider:
    """Create a catalog provider with two overlapping study plans."""
    return FakeCatalogProvider({
        "top-100-liked": [
            make_group("hashing", ["1", "49"], Difficulty.EASY),
            make_group("two-pointers", ["283", "11"], Difficulty.MEDIUM),
        ],
        "leetcode-75": [
            make_group("array-string", ["1768", "1071"], Difficulty.EASY),
            make_group("hashing", ["1"], Difficulty.EASY),
        ],
    })
