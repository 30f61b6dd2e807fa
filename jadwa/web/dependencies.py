"""Shared dependencies for Jadwa web routes.

Services live on ``app.state.services`` (built in the app lifespan); route
handlers receive them through FastAPI's Depends().

Usage:
    from fastapi import Depends
    from jadwa.web.dependencies import get_current_identity, get_services

    @router.get("/my")
    async def my_things(
        identity: Identity = Depends(get_current_identity),
        services: Services = Depends(get_services),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from jadwa.container import Services
from jadwa.models import Identity

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve the Bearer token to an Identity.

    Missing, invalid or expired tokens and suspended accounts raise
    AuthorizationError, rendered by the app's error handler.
    """
    token = credentials.credentials if credentials else None
    return await services.identity.authenticate(token)
