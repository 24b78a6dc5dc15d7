"""Shared test fixtures for Cadence tests."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cadence.core.database import Database, close_database, init_database
from cadence.daemon.main import create_app
from cadence.services.claim_queue import ClaimQueue
from cadence.services.schedule_service import ScheduleService
from cadence.services.workflow_service import WorkflowService

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """T0 shifted by ``seconds``."""
    return T0 + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user/global cadence.toml files out of the tests."""
    monkeypatch.setenv("CADENCE_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest_asyncio.fixture(scope="function")
async def database(tmp_path):
    """File-backed SQLite so concurrent claimers get separate connections."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'cadence.db'}")
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def schedules(database) -> ScheduleService:
    return ScheduleService(database)


@pytest.fixture
def workflows(database) -> WorkflowService:
    return WorkflowService(database)


@pytest.fixture
def queue(database) -> ClaimQueue:
    return ClaimQueue(database)


@pytest.fixture
def make_linked(schedules, workflows):
    """Create a schedule touched at ``created`` and link it to a new workflow."""

    async def _make(update_interval: int, created: datetime = T0, owner_id: str = "ws-1", workflow_id: str | None = None):
        schedule = await schedules.create_schedule(owner_id, update_interval, {"interval": update_interval}, now=created)
        if workflow_id is None:
            workflow = await workflows.create_workflow(owner_id, f"wf-{update_interval}", now=created)
            workflow_id = workflow.id
        links = await schedules.list_workflow_links(workflow_id)
        await schedules.replace_workflow_links(workflow_id, [*links, schedule.id])
        return schedule, workflow_id

    return _make


@pytest_asyncio.fixture(scope="function")
async def app(tmp_path, monkeypatch):
    """Create a fresh app backed by a temporary SQLite file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"
    monkeypatch.setenv("CADENCE_DATABASE_URL", url)
    monkeypatch.setenv("CADENCE_API_KEY", "test_key")
    monkeypatch.setenv("CADENCE_POLLER_ENABLED", "false")

    db = init_database(url)
    await db.create_tables()

    yield create_app()

    await close_database()


@pytest_asyncio.fixture(scope="function")
async def client(app):
    """Async HTTP client pointed at the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": "Bearer test_key"},
    ) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def unauthed_client(app):
    """Async HTTP client without auth."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
