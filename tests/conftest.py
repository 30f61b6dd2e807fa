"""Pytest configuration and fixtures for Jadwa tests.

Every test gets its own SQLite database file under ``tmp_path`` so that
several sessions (workflow, audit, notifier) share one store.
"""

from __future__ import annotations

import os
from types import SimpleNamespace
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from jadwa.config import get_config, reset_config
from jadwa.container import build_services
from jadwa.db.connection import build_session_factory, session_scope
from jadwa.db.models import Base, UserModel
from jadwa.models import Identity, Role, UserStatus


@pytest.fixture(autouse=True)
def app_env(monkeypatch, tmp_path):
    """Point the app at a throwaway database and a fixed token secret."""
    db_path = tmp_path / "jadwa.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("LOG_FORMAT", "text")
    monkeypatch.setenv("SLACK_NOTIFICATIONS_ENABLED", "false")
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.delenv("RELAY_ENFORCE_VISIBILITY", raising=False)
    reset_config()
    yield db_path
    reset_config()


@pytest_asyncio.fixture
async def engine(app_env):
    engine = create_async_engine(os.environ["DATABASE_URL"])
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def services(engine):
    """Full service graph over the test database."""
    services = build_services(get_config(), engine=engine)
    try:
        yield services
    finally:
        await services.dispatcher.drain()


async def add_user(
    session_factory,
    role: Role,
    name: str,
    status: UserStatus = UserStatus.ACTIVE,
) -> Identity:
    async with session_scope(session_factory) as session:
        user = UserModel(
            email=f"{name.lower().replace(' ', '.')}@example.com",
            full_name=name,
            role=role.value,
            status=status.value,
        )
        session.add(user)
        await session.flush()
        user_id: UUID = user.id
    return Identity(user_id=user_id, role=role, status=status, full_name=name)


@pytest_asyncio.fixture
async def people(session_factory) -> SimpleNamespace:
    """Two clients, two consultants, an admin and some inactive accounts."""
    return SimpleNamespace(
        client=await add_user(session_factory, Role.CLIENT, "Sara Client"),
        other_client=await add_user(session_factory, Role.CLIENT, "Omar Client"),
        consultant=await add_user(session_factory, Role.CONSULTANT, "Layla Consultant"),
        other_consultant=await add_user(session_factory, Role.CONSULTANT, "Fahad Consultant"),
        pending_consultant=await add_user(
            session_factory, Role.CONSULTANT, "Noura Pending", UserStatus.PENDING
        ),
        admin=await add_user(session_factory, Role.ADMIN, "Admin User"),
        pending_admin=await add_user(session_factory, Role.ADMIN, "Pending Admin", UserStatus.PENDING),
    )


@pytest.fixture
def make_user(session_factory):
    """Factory for extra accounts: ``await make_user(Role.CLIENT, "Name", UserStatus.SUSPENDED)``."""

    async def _make(role: Role, name: str, status: UserStatus = UserStatus.ACTIVE) -> Identity:
        return await add_user(session_factory, role, name, status)

    return _make
