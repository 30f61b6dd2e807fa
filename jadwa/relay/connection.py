"""Live relay connections."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

from starlette.websockets import WebSocket

from jadwa.models import Identity


class Connection(ABC):
    """One live client connection.

    Holds the identity it authenticated as (``None`` until then). The relay
    only ever talks to connections through ``send``.
    """

    def __init__(self, connection_id: str | None = None):
        self.connection_id = connection_id or str(uuid4())
        self.identity: Identity | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    @abstractmethod
    async def send(self, event: str, data: Any) -> None:
        """Deliver one outbound event frame."""
        ...

    def __repr__(self) -> str:
        user = self.identity.user_id if self.identity else None
        return f"{type(self).__name__}(id={self.connection_id!r}, user={user})"


class WebSocketConnection(Connection):
    """Connection backed by a Starlette/FastAPI websocket speaking JSON frames."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        super().__init__(connection_id)
        self.websocket = websocket

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})
