"""Process-local registry of websocket connections, rooms and presence."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import realtime_connections, realtime_rooms

logger = logging.getLogger(__name__)


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send ``data`` unless the socket is already gone.

    Returns True if the frame was handed to the socket.
    """
    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


class RoomRegistry:
    """Map of room names to live connections plus the presence map.

    All mutation happens under one ``asyncio.Lock``. When a connect and a
    disconnect of the same user race, whichever call acquires the lock last
    decides the presence value (last writer wins). Nothing here survives a
    restart; ``reset`` is called on startup.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._memberships: Dict[WebSocket, Set[str]] = {}
        self._sockets_by_user: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._online: Dict[int, bool] = {}
        self._lock = asyncio.Lock()

    async def reset(self) -> None:
        async with self._lock:
            self._rooms.clear()
            self._memberships.clear()
            self._sockets_by_user.clear()
            self._online.clear()
            realtime_connections.set(0, scope="chat")
            realtime_rooms.set(0)

    async def connect(
        self,
        user_id: int,
        websocket: WebSocket,
        rooms: Iterable[str] = (),
        *,
        track_presence: bool = True,
    ) -> bool:
        """Register a socket in its personal room and ``rooms``.

        Returns True when the user transitions from offline to online.
        """
        async with self._lock:
            joined = {user_room(user_id), *rooms}
            self._memberships[websocket] = set()
            for room in joined:
                self._join(room, websocket)
            self._sockets_by_user[user_id].add(websocket)
            realtime_connections.inc(scope="chat")
            if not track_presence:
                return False
            was_online = self._online.get(user_id, False)
            self._online[user_id] = True
            return not was_online

    async def disconnect(self, user_id: int, websocket: WebSocket) -> bool:
        """Drop a socket from every room.

        Returns True when this was the user's last connection and the user
        was visible as online.
        """
        async with self._lock:
            rooms = self._memberships.pop(websocket, None)
            if rooms is None:
                return False
            for room in rooms:
                self._leave(room, websocket)
            realtime_connections.dec(scope="chat")
            sockets = self._sockets_by_user.get(user_id)
            if sockets is not None:
                sockets.discard(websocket)
                if sockets:
                    return False
                self._sockets_by_user.pop(user_id, None)
            return self._online.pop(user_id, False)

    async def join_user(self, user_id: int, room: str) -> None:
        """Subscribe every live connection of ``user_id`` to ``room``."""

        async with self._lock:
            for websocket in self._sockets_by_user.get(user_id, ()):
                self._join(room, websocket)

    async def leave_user(self, user_id: int, room: str) -> None:
        async with self._lock:
            for websocket in self._sockets_by_user.get(user_id, ()):
                self._leave(room, websocket)

    async def drop_room(self, room: str) -> None:
        async with self._lock:
            for websocket in self._rooms.pop(room, set()):
                self._memberships.get(websocket, set()).discard(room)
            realtime_rooms.set(len(self._rooms))

    async def connections_in(
        self, rooms: Iterable[str], *, exclude: Iterable[WebSocket] | None = None
    ) -> list[WebSocket]:
        """Snapshot of the distinct connections subscribed to any of ``rooms``."""

        excluded = set(exclude or ())
        seen: Set[WebSocket] = set()
        ordered: list[WebSocket] = []
        async with self._lock:
            for room in rooms:
                for websocket in self._rooms.get(room, ()):
                    if websocket in excluded or websocket in seen:
                        continue
                    seen.add(websocket)
                    ordered.append(websocket)
        return ordered

    def is_online(self, user_id: int) -> bool:
        return self._online.get(user_id, False)

    def is_connected(self, user_id: int) -> bool:
        """True while ``user_id`` has a live socket, whatever their presence setting."""
        return bool(self._sockets_by_user.get(user_id))

    def online_users(self) -> list[int]:
        return sorted(user_id for user_id, online in self._online.items() if online)

    def rooms_of(self, websocket: WebSocket) -> set[str]:
        return set(self._memberships.get(websocket, ()))

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def _join(self, room: str, websocket: WebSocket) -> None:
        memberships = self._memberships.get(websocket)
        if memberships is None:
            return
        self._rooms[room].add(websocket)
        memberships.add(room)
        realtime_rooms.set(len(self._rooms))

    def _leave(self, room: str, websocket: WebSocket) -> None:
        bucket = self._rooms.get(room)
        if bucket is not None:
            bucket.discard(websocket)
            if not bucket:
                self._rooms.pop(room, None)
        self._memberships.get(websocket, set()).discard(room)
        realtime_rooms.set(len(self._rooms))
