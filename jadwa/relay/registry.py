"""
Room registry: engagement id -> connections currently subscribed to it.

The relay depends only on the RoomRegistry interface so that a single
process can use the in-memory implementation while a multi-process
deployment swaps in a pub/sub backed one.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Hashable

import structlog

from jadwa.core.locks import KeyedLock
from jadwa.relay.connection import Connection

logger = structlog.get_logger(__name__)


class RoomRegistry(ABC):
    """Abstract room registry.

    Implementations must provide:
    - subscribe / unsubscribe: join or leave one room
    - remove_connection: drop a connection from every room it joined
    - subscribers: a consistent snapshot of one room
    - broadcast: deliver an event to that snapshot
    """

    @abstractmethod
    async def subscribe(self, room: Hashable, connection: Connection) -> None: ...

    @abstractmethod
    async def unsubscribe(self, room: Hashable, connection: Connection) -> bool: ...

    @abstractmethod
    async def remove_connection(self, connection: Connection) -> list[Hashable]: ...

    @abstractmethod
    async def subscribers(self, room: Hashable) -> list[Connection]: ...

    @abstractmethod
    async def broadcast(self, room: Hashable, event: str, data: object) -> int:
        """Send to every subscriber of ``room``; returns the number reached."""
        ...

    @abstractmethod
    async def close(self) -> None: ...


class InMemoryRoomRegistry(RoomRegistry):
    """Single-process registry.

    Membership changes and the subscriber snapshot taken by a broadcast are
    serialized per room. A connection whose send fails, or does not finish
    within ``send_timeout`` seconds, is evicted from all of its rooms.
    """

    def __init__(self, send_timeout: float = 10.0) -> None:
        self.send_timeout = send_timeout
        self._rooms: dict[Hashable, dict[str, Connection]] = {}
        self._memberships: dict[str, set[Hashable]] = {}
        self._locks = KeyedLock()

    async def subscribe(self, room: Hashable, connection: Connection) -> None:
        async with self._locks.acquire(room):
            self._rooms.setdefault(room, {})[connection.connection_id] = connection
            self._memberships.setdefault(connection.connection_id, set()).add(room)

    async def unsubscribe(self, room: Hashable, connection: Connection) -> bool:
        async with self._locks.acquire(room):
            return self._discard(room, connection.connection_id)

    async def remove_connection(self, connection: Connection) -> list[Hashable]:
        rooms = list(self._memberships.get(connection.connection_id, ()))
        for room in rooms:
            async with self._locks.acquire(room):
                self._discard(room, connection.connection_id)
        self._memberships.pop(connection.connection_id, None)
        return rooms

    async def subscribers(self, room: Hashable) -> list[Connection]:
        async with self._locks.acquire(room):
            return list(self._rooms.get(room, {}).values())

    async def broadcast(self, room: Hashable, event: str, data: object) -> int:
        delivered = 0
        for connection in await self.subscribers(room):
            try:
                await asyncio.wait_for(connection.send(event, data), self.send_timeout)
            except TimeoutError:
                logger.warning(
                    "broadcast_delivery_timed_out",
                    room=str(room),
                    connection_id=connection.connection_id,
                    timeout=self.send_timeout,
                )
                await self.remove_connection(connection)
                continue
            except Exception as exc:
                logger.warning(
                    "broadcast_delivery_failed",
                    room=str(room),
                    connection_id=connection.connection_id,
                    error=str(exc),
                )
                await self.remove_connection(connection)
                continue
            delivered += 1
        return delivered

    async def close(self) -> None:
        self._rooms.clear()
        self._memberships.clear()

    def _discard(self, room: Hashable, connection_id: str) -> bool:
        members = self._rooms.get(room)
        if not members or connection_id not in members:
            return False
        del members[connection_id]
        if not members:
            del self._rooms[room]
        joined = self._memberships.get(connection_id)
        if joined is not None:
            joined.discard(room)
            if not joined:
                del self._memberships[connection_id]
        return True
