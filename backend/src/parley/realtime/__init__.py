"""Room registry and event fan-out for websocket clients."""

from .delivery import (  # noqa: F401
    Dispatcher,
    DomainEvent,
    EventKind,
    dispatcher,
    get_dispatcher,
    get_room_registry,
    room_registry,
    shutdown_realtime,
    startup_realtime,
    target_rooms,
)
from .rooms import RoomRegistry, conversation_room, safe_send_json, user_room  # noqa: F401

__all__ = [
    "startup_realtime",
    "shutdown_realtime",
    "get_dispatcher",
    "get_room_registry",
    "dispatcher",
    "room_registry",
    "target_rooms",
    "Dispatcher",
    "DomainEvent",
    "EventKind",
    "RoomRegistry",
    "conversation_room",
    "safe_send_json",
    "user_room",
]
