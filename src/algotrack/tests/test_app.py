"""Tests for the main application and the command line."""
import json
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from algotrack.__main__ import main
from algotrack.app import AlgoTrack
from algotrack.models.progress_models import ProgressStatus
from conftest import FakeCatalogProvider


@pytest.fixture
def app(db: Session, catalog: FakeCatalogProvider) -> AlgoTrack:
    """Create an application over the test database and fake catalog."""
    return AlgoTrack(db=db, provider=catalog)


@pytest.fixture
def cli(db: Session, catalog: FakeCatalogProvider):
    """Run CLI commands against the test database and fake catalog."""
    async def run(*argv: str) -> int:
        with patch("algotrack.__main__.AlgoTrack", lambda: AlgoTrack(db=db, provider=catalog)), \
                patch("algotrack.__main__.setup_logging"):
            return await main(list(argv))
    return run


@pytest.mark.asyncio
async def test_start_and_stop(app: AlgoTrack, db: Session) -> None:
    """Test starting and stopping the application."""
    await app.start()

    assert app.running
    assert app.store is not None
    assert app.progress is not None
    assert app.backup is not None

    await app.stop()

    assert not app.running
    # Injected session is left open for its owner
    assert app.db is db


@pytest.mark.asyncio
async def test_load_default_plan(app: AlgoTrack, catalog: FakeCatalogProvider) -> None:
    """Test loading without a slug uses the default plan."""
    async with app:
        active = await app.load_plan()
        result = app.progress.learn("1", catalog_id=active.catalog_id)
        known = {problem.id: problem for problem in app.known_problems()}

    assert catalog.calls == ["top-100-liked"]
    assert result.ok
    assert known["1"].record.status == ProgressStatus.LEARNING
    assert len(known) == 4


@pytest.mark.asyncio
async def test_cli_requires_command(cli) -> None:
    """Test running without a command fails."""
    assert await cli() == 1


@pytest.mark.asyncio
async def test_cli_plans(cli, capsys) -> None:
    """Test listing study plans."""
    assert await cli("plans") == 0

    output = capsys.readouterr().out
    assert "top-interview-150" in output
    assert "#F6465D (default)" in output


@pytest.mark.asyncio
async def test_cli_learn_and_review(cli, capsys) -> None:
    """Test loading a plan, learning and failing to review twice in a row."""
    assert await cli("load", "top-100-liked") == 0
    assert await cli("learn", "49") == 0
    assert "Problem 49: learning" in capsys.readouterr().out

    assert await cli("review", "49") == 0
    assert await cli("learn", "404") == 1
    assert await cli("review", "283") == 1


@pytest.mark.asyncio
async def test_cli_stats_and_history(cli, capsys) -> None:
    """Test statistics commands."""
    await cli("learn", "1", "--plan", "leetcode-75")
    capsys.readouterr()

    assert await cli("history") == 0
    assert "learn" in capsys.readouterr().out
    assert await cli("stats", "--plan", "leetcode-75") == 0
    output = capsys.readouterr().out
    assert "Learned: 1" in output
    assert "First Step" in output


@pytest.mark.asyncio
async def test_cli_unknown_plan(cli) -> None:
    """Test catalog failures exit with an error."""
    assert await cli("load", "no-such-plan") == 1


@pytest.mark.asyncio
async def test_cli_export_import(cli, tmp_path) -> None:
    """Test exporting to a file and importing it back."""
    await cli("learn", "1", "--plan", "top-100-liked")
    output = tmp_path / "backup.json"

    assert await cli("export", "all", "-o", str(output)) == 0
    exported = json.loads(output.read_text(encoding="utf-8"))
    assert exported["1"]["status"] == "learning"

    assert await cli("clear") == 1
    assert await cli("clear", "--yes") == 0
    assert await cli("import", str(output), "records") == 0
    assert await cli("export", "records", "-o", str(output)) == 0
    assert json.loads(output.read_text(encoding="utf-8"))["1"]["status"] == "learning"

    output.write_text("[]", encoding="utf-8")
    assert await cli("import", str(output)) == 1
