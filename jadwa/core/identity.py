"""Identity provider: resolves a bearer credential to an Identity.

Tokens are HS256 JWTs carrying the user id in ``userId`` (``sub`` is also
accepted). Role and status are always read from the users table, never
trusted from the token.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog
from jose import JWTError, jwt
from sqlalchemy.orm import sessionmaker

from jadwa.config import AuthConfig, get_config
from jadwa.db import ledger
from jadwa.db.connection import get_session_factory, session_scope
from jadwa.errors import AuthorizationError
from jadwa.models import Identity, Role, UserStatus

logger = structlog.get_logger(__name__)


def create_access_token(
    user_id: UUID | str,
    role: str,
    settings: AuthConfig | None = None,
    expires_minutes: int | None = None,
) -> str:
    settings = settings or get_config().auth
    minutes = expires_minutes if expires_minutes is not None else settings.token_expire_minutes
    to_encode = {
        "userId": str(user_id),
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TokenIdentityProvider:
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: AuthConfig | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings

    @property
    def settings(self) -> AuthConfig:
        return self._settings or get_config().auth

    def _decode_user_id(self, credential: str) -> UUID:
        try:
            payload = jwt.decode(
                credential,
                self.settings.jwt_secret,
                algorithms=[self.settings.jwt_algorithm],
            )
        except JWTError as exc:
            raise AuthorizationError("Invalid or expired token") from exc

        raw_id = payload.get("userId") or payload.get("sub")
        if not raw_id:
            raise AuthorizationError("Token does not name a user")
        try:
            return UUID(str(raw_id))
        except ValueError as exc:
            raise AuthorizationError("Token does not name a user") from exc

    async def authenticate(self, credential: str | None) -> Identity:
        """Return the caller's identity or raise AuthorizationError."""
        if not credential:
            raise AuthorizationError("Access token required")

        user_id = self._decode_user_id(credential)

        async with session_scope(self._session_factory or get_session_factory()) as session:
            user = await ledger.get_user(session, user_id)

        if user is None:
            raise AuthorizationError("Unknown user")
        if user.status == UserStatus.SUSPENDED.value:
            logger.warning("suspended_user_rejected", user_id=str(user_id))
            raise AuthorizationError("Account suspended")

        return Identity(
            user_id=user.id,
            role=Role(user.role),
            status=UserStatus(user.status),
            full_name=user.full_name,
            avatar_url=user.avatar_url,
        )
