"""Real-time message relay for chat consultations."""

from jadwa.relay.connection import Connection, WebSocketConnection
from jadwa.relay.registry import InMemoryRoomRegistry, RoomRegistry
from jadwa.relay.service import MessageRelay

__all__ = [
    "Connection",
    "WebSocketConnection",
    "RoomRegistry",
    "InMemoryRoomRegistry",
    "MessageRelay",
]
