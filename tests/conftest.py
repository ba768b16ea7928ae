"""Shared fixtures: in-memory database, fixed clock and fake collaborators."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from review_gateway.core.database import get_session
from review_gateway.core.errors import DocumentGenerationError, NotificationError
from review_gateway.core.security import StaffLevel, create_access_token
from review_gateway.core.store import RecordStore
from review_gateway.models import (
    Application,
    ApplicationStatus,
    Base,
    Package,
    Requester,
    Reviewer,
)
from review_gateway.services.effects import get_document_generator, get_notifier


# =============================================================================
# COLLABORATOR FAKES
# =============================================================================


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubDocumentGenerator:
    def __init__(self):
        self.fail = False
        self.calls: list[UUID] = []

    async def generate(self, application_id: UUID) -> str:
        self.calls.append(application_id)
        if self.fail:
            raise DocumentGenerationError("document service unavailable")
        return f"doc-{len(self.calls)}"


class RecordingNotifier:
    def __init__(self):
        self.fail = False
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def notify(self, target_id: Any, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise NotificationError("webhook unavailable")
        self.events.append((str(target_id), event_type, payload))

    def event_types(self) -> list[str]:
        return [event_type for _, event_type, _ in self.events]


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session) -> RecordStore:
    return RecordStore(session, timeout=5.0)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def documents() -> StubDocumentGenerator:
    return StubDocumentGenerator()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# RECORD FACTORIES
# =============================================================================


async def create_reviewer(store: RecordStore, name: str = "Dana", is_active: bool = True) -> Reviewer:
    reviewer = Reviewer(
        id=uuid4(),
        first_name=name,
        last_name="Reviewer",
        email=f"{name.lower()}-{uuid4().hex[:8]}@example.com",
        specialty="Family medicine",
        is_active=is_active,
    )
    return await store.put(reviewer)


async def create_application(
    store: RecordStore,
    status: ApplicationStatus = ApplicationStatus.PENDING,
) -> Application:
    requester = await store.put(
        Requester(
            first_name="Riley",
            last_name="Applicant",
            email=f"riley-{uuid4().hex[:8]}@example.com",
            phone="555-0100",
            city="Austin",
            state="TX",
        )
    )
    package = await store.put(Package(name="Standard Evaluation", description="One letter"))
    application = Application(
        requester_id=requester.id,
        package_id=package.id,
        status=status,
        form_data={"reason": "housing"},
    )
    return await store.put(application)


@pytest.fixture
def make_reviewer(store):
    async def factory(name: str = "Dana", is_active: bool = True) -> Reviewer:
        return await create_reviewer(store, name, is_active)
    return factory


@pytest.fixture
def make_application(store):
    async def factory(status: ApplicationStatus = ApplicationStatus.PENDING) -> Application:
        return await create_application(store, status)
    return factory


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def app(session_factory, documents, notifier):
    from review_gateway.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_document_generator] = lambda: documents
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def seed(session_factory):
    """Run a coroutine against a committed, short-lived store."""

    async def run(fn, *args, **kwargs):
        async with session_factory() as session:
            result = await fn(RecordStore(session), *args, **kwargs)
            await session.commit()
            return result

    return run


def auth_headers(level: StaffLevel) -> dict[str, str]:
    token = create_access_token(f"staff-{level.name.lower()}", level)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(StaffLevel.ADMIN)


@pytest.fixture
def agent_headers() -> dict[str, str]:
    return auth_headers(StaffLevel.AGENT)
