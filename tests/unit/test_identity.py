"""Tests for jadwa.core.identity - bearer token authentication."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from jose import jwt

from jadwa.config import AuthConfig
from jadwa.core.identity import TokenIdentityProvider, create_access_token
from jadwa.errors import AuthorizationError
from jadwa.models import Role, UserStatus

SETTINGS = AuthConfig(jwt_secret="test-secret")


@pytest.fixture
def provider(session_factory):
    return TokenIdentityProvider(session_factory, settings=SETTINGS)


@pytest.mark.asyncio
async def test_token_resolves_to_identity(provider, people):
    token = create_access_token(people.consultant.user_id, "consultant", settings=SETTINGS)

    identity = await provider.authenticate(token)

    assert identity.user_id == people.consultant.user_id
    assert identity.role == Role.CONSULTANT
    assert identity.status == UserStatus.ACTIVE
    assert identity.full_name == "Layla Consultant"


@pytest.mark.asyncio
async def test_role_comes_from_database_not_token(provider, people):
    token = create_access_token(people.client.user_id, "admin", settings=SETTINGS)

    identity = await provider.authenticate(token)

    assert identity.role == Role.CLIENT
    assert not identity.is_admin


@pytest.mark.asyncio
async def test_sub_claim_is_accepted(provider, people):
    token = jwt.encode(
        {"sub": str(people.admin.user_id), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "test-secret",
        algorithm="HS256",
    )

    identity = await provider.authenticate(token)

    assert identity.is_active_admin


@pytest.mark.asyncio
@pytest.mark.parametrize("credential", [None, "", "not-a-jwt"])
async def test_bad_credentials(provider, people, credential):
    with pytest.raises(AuthorizationError):
        await provider.authenticate(credential)


@pytest.mark.asyncio
async def test_expired_token(provider, people):
    token = create_access_token(people.client.user_id, "client", settings=SETTINGS, expires_minutes=-1)

    with pytest.raises(AuthorizationError):
        await provider.authenticate(token)


@pytest.mark.asyncio
async def test_wrong_secret(provider, people):
    token = create_access_token(
        people.client.user_id, "client", settings=AuthConfig(jwt_secret="someone-else")
    )

    with pytest.raises(AuthorizationError):
        await provider.authenticate(token)


@pytest.mark.asyncio
async def test_unknown_user(provider, people):
    token = create_access_token(uuid4(), "client", settings=SETTINGS)

    with pytest.raises(AuthorizationError):
        await provider.authenticate(token)


@pytest.mark.asyncio
async def test_suspended_user_is_rejected(provider, make_user):
    suspended = await make_user(Role.CLIENT, "Suspended Client", UserStatus.SUSPENDED)
    token = create_access_token(suspended.user_id, "client", settings=SETTINGS)

    with pytest.raises(AuthorizationError) as exc_info:
        await provider.authenticate(token)

    assert "suspended" in exc_info.value.message.lower()
