"""Shared fixtures: an in-memory SQLite database, the service container, and an API client.

SQLite stands in for Postgres. Foreign keys are switched on per connection so
a bad `changed_by_id` fails the transaction the way Postgres would.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from modelmagic.database import create_session_factory
from modelmagic.models.contracts import EmailResult, ReferenceImage
from modelmagic.models.db import Base, User, UserRole
from modelmagic.services.container import build_services
from modelmagic.services.email import EmailService
from modelmagic.state_machine.registry import ProjectStatus

# Happy path from INTAKE_NEW; walking a prefix of it reaches any status.
HAPPY_PATH = (
    ProjectStatus.AWAITING_PAYMENT,
    ProjectStatus.PAID,
    ProjectStatus.IN_QUEUE,
    ProjectStatus.GENERATING,
    ProjectStatus.REVIEW_READY,
    ProjectStatus.COMPLETED,
)

REFERENCE = ReferenceImage(
    file_name="dress-front.jpg",
    file_url="projects/ref/dress-front.jpg",
    file_key="projects/ref/dress-front.jpg",
    mime_type="image/jpeg",
    file_size=204_800,
)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def email():
    """EmailService double: every template send succeeds."""
    mock = AsyncMock(spec=EmailService)
    ok = EmailResult(success=True, message_id="msg_test")
    for name in (
        "send_intake_confirmation",
        "send_payment_request",
        "send_assets_ready",
        "send_revision_notification",
        "send_project_completed",
    ):
        getattr(mock, name).return_value = ok
    return mock


@pytest.fixture
def services(session_factory, email):
    return build_services(session_factory, email=email)


async def _add_user(session_factory, email_address: str, name: str, role: UserRole) -> User:
    async with session_factory() as session, session.begin():
        user = User(email=email_address, name=name, role=role)
        session.add(user)
    return user


@pytest.fixture
async def client_user(session_factory) -> User:
    return await _add_user(session_factory, "ada@example.com", "Ada", UserRole.CLIENT)


@pytest.fixture
async def admin_user(session_factory) -> User:
    return await _add_user(session_factory, "ops@modelmagic.test", "Ops", UserRole.ADMIN)


@pytest.fixture
def make_project(services, client_user):
    """Create a project through the intake path and walk it to `status` via the executor."""

    async def _make(status: ProjectStatus = ProjectStatus.INTAKE_NEW, owner: User | None = None) -> uuid.UUID:
        user = owner or client_user
        view = await services.projects.create_project(
            user.id, "Clothing", "Summer dress on a beach model, golden hour", [REFERENCE]
        )
        if status is not ProjectStatus.INTAKE_NEW:
            for step in HAPPY_PATH[: HAPPY_PATH.index(status) + 1]:
                result = await services.executor.execute_transition(view.id, step)
                assert result.success, result.error
        return view.id

    return _make


@pytest.fixture
def client_headers(client_user) -> dict[str, str]:
    return {"X-User-Id": str(client_user.id), "X-User-Role": "CLIENT"}


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    return {"X-User-Id": str(admin_user.id), "X-User-Role": "ADMIN"}


@pytest.fixture
async def client(services):
    """API client bound to the test service container; the lifespan is not run."""
    from modelmagic.main import app

    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.services = None
