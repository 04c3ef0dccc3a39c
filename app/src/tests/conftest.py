import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from app.core.clock import FakeClock, get_clock
from app.core.database import build_session_maker, get_session
from app.main import app
from app.src.jobs.fines_scheduler import AccrualScheduler, get_accrual_scheduler
from app.src.services.borrowings import BorrowingService
from app.src.services.fines import FineService
from app.src.services.notifications import NotificationService, get_notifier
from app.src.tests.utils import START, RecordingEmailSender, TestDatabase


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_db(session):
    return TestDatabase(session)


@pytest.fixture
async def seed(test_db):
    return await test_db.populate_test_data()


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def notifier(session_factory, email_sender):
    return NotificationService(session_factory=session_factory, email_sender=email_sender)


@pytest.fixture
def borrowing_service(session, clock, notifier):
    return BorrowingService(session, clock, notifier)


@pytest.fixture
def fine_service(session, clock, notifier):
    return FineService(session, clock, notifier)


@pytest.fixture
async def scheduler(session_factory, clock, notifier):
    scheduler = AccrualScheduler(session_factory=session_factory, clock=clock, notifier=notifier)
    yield scheduler
    await scheduler.stop()


@pytest.fixture
async def client(seed, session_factory, clock, notifier, scheduler):
    """Client wired to the per-test database; authenticate with auth_headers()."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_accrual_scheduler] = lambda: scheduler

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
