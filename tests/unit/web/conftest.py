"""Fixtures for route tests: the full app over the per-test SQLite file."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from jadwa.core.identity import create_access_token
from jadwa.web.app import create_app


@pytest.fixture
def client(people):
    """App client; tables and accounts are already seeded by ``people``."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def auth():
    """``auth(identity)`` -> Authorization header for that user."""

    def _headers(identity) -> dict[str, str]:
        token = create_access_token(identity.user_id, identity.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
