"""Fan-out of domain events to the rooms interested in them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence

from fastapi.websockets import WebSocket

from app.monitoring.metrics import realtime_delivery_failures_total, realtime_events_total

from .rooms import RoomRegistry, conversation_room, safe_send_json, user_room

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PRIVATE_MESSAGE = "private_message"
    GROUP_MESSAGE = "group_message"
    MESSAGE_DELETED = "message_deleted"
    TYPING = "typing"
    REACTION = "reaction"
    SEEN = "seen"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    SETTINGS_UPDATED = "settings_updated"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    STATUS_CREATED = "status_created"
    STATUS_DELETED = "status_deleted"
    STATUS_SEEN = "status_seen"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    FRIEND_REQUEST_CANCELLED = "friend_request_cancelled"
    FRIEND_DELETED = "friend_deleted"
    INCOMING_CALL = "incoming_call"
    CALL_ACCEPTED = "call_accepted"
    CALL_ENDED = "call_ended"
    SIGNAL = "signal"
    PRESENCE = "presence"
    ERROR = "error"


class Target(str, Enum):
    """Room selectors resolved against the fields of an event."""

    RECIPIENTS = "recipients"
    ACTOR = "actor"
    CONVERSATION = "conversation"


WIRE_NAMES: dict[EventKind, str] = {
    EventKind.PRIVATE_MESSAGE: "receiveMessage",
    EventKind.GROUP_MESSAGE: "receiveMessage",
    EventKind.MESSAGE_DELETED: "messageDeleted",
    EventKind.TYPING: "typing",
    EventKind.REACTION: "messageReaction",
    EventKind.SEEN: "messagesSeen",
    EventKind.MEMBER_ADDED: "addedToGroup",
    EventKind.MEMBER_REMOVED: "deletedFromGroup",
    EventKind.SETTINGS_UPDATED: "groupSettingsUpdated",
    EventKind.GROUP_UPDATED: "groupDataUpdated",
    EventKind.GROUP_DELETED: "groupDeleted",
    EventKind.STATUS_CREATED: "newFriendStatus",
    EventKind.STATUS_DELETED: "deleteFriendStatus",
    EventKind.STATUS_SEEN: "statusSeen",
    EventKind.FRIEND_REQUEST: "newFriendRequest",
    EventKind.FRIEND_ACCEPTED: "friendAccepted",
    EventKind.FRIEND_REQUEST_CANCELLED: "friendRequestCancelled",
    EventKind.FRIEND_DELETED: "friendDeleted",
    EventKind.INCOMING_CALL: "incomingCall",
    EventKind.CALL_ACCEPTED: "callAccepted",
    EventKind.CALL_ENDED: "callEnded",
    EventKind.SIGNAL: "signal",
    EventKind.PRESENCE: "onlineStatus",
    EventKind.ERROR: "errors",
}

# Which rooms each kind of event reaches. CONVERSATION only applies when the
# event names a group conversation; private targets are listed as recipients.
ROUTES: dict[EventKind, tuple[Target, ...]] = {
    EventKind.PRIVATE_MESSAGE: (Target.RECIPIENTS, Target.ACTOR),
    EventKind.GROUP_MESSAGE: (Target.CONVERSATION,),
    EventKind.MESSAGE_DELETED: (Target.RECIPIENTS, Target.CONVERSATION),
    EventKind.TYPING: (Target.RECIPIENTS,),
    EventKind.REACTION: (Target.RECIPIENTS, Target.CONVERSATION),
    EventKind.SEEN: (Target.RECIPIENTS,),
    EventKind.MEMBER_ADDED: (Target.CONVERSATION,),
    EventKind.MEMBER_REMOVED: (Target.CONVERSATION, Target.RECIPIENTS),
    EventKind.SETTINGS_UPDATED: (Target.CONVERSATION,),
    EventKind.GROUP_UPDATED: (Target.CONVERSATION,),
    EventKind.GROUP_DELETED: (Target.CONVERSATION,),
    EventKind.STATUS_CREATED: (Target.RECIPIENTS,),
    EventKind.STATUS_DELETED: (Target.RECIPIENTS,),
    EventKind.STATUS_SEEN: (Target.RECIPIENTS,),
    EventKind.FRIEND_REQUEST: (Target.RECIPIENTS,),
    EventKind.FRIEND_ACCEPTED: (Target.RECIPIENTS,),
    EventKind.FRIEND_REQUEST_CANCELLED: (Target.RECIPIENTS,),
    EventKind.FRIEND_DELETED: (Target.RECIPIENTS,),
    EventKind.INCOMING_CALL: (Target.RECIPIENTS,),
    EventKind.CALL_ACCEPTED: (Target.RECIPIENTS,),
    EventKind.CALL_ENDED: (Target.RECIPIENTS,),
    EventKind.SIGNAL: (Target.RECIPIENTS,),
    EventKind.PRESENCE: (Target.RECIPIENTS,),
    EventKind.ERROR: (Target.ACTOR,),
}


@dataclass(slots=True)
class DomainEvent:
    """Result of one mutation, ready to be fanned out.

    ``payload`` must already be JSON serialisable and is built from the
    value returned by the mutating call.
    """

    kind: EventKind
    payload: Any
    actor_id: int | None = None
    recipient_ids: Sequence[int] = field(default_factory=tuple)
    conversation_id: int | None = None

    @property
    def name(self) -> str:
        return WIRE_NAMES[self.kind]


def target_rooms(event: DomainEvent) -> list[str]:
    """Room names addressed by ``event`` in routing order, without duplicates."""

    rooms: list[str] = []
    for target in ROUTES[event.kind]:
        if target is Target.RECIPIENTS:
            rooms.extend(user_room(user_id) for user_id in event.recipient_ids)
        elif target is Target.ACTOR and event.actor_id is not None:
            rooms.append(user_room(event.actor_id))
        elif target is Target.CONVERSATION and event.conversation_id is not None:
            rooms.append(conversation_room(event.conversation_id))
    return list(dict.fromkeys(rooms))


class Dispatcher:
    """Deliver events to every connection of the targeted rooms exactly once."""

    def __init__(self, registry: RoomRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    async def publish(
        self, event: DomainEvent, *, exclude: Iterable[WebSocket] | None = None
    ) -> int:
        """Send ``event`` and return how many connections received it."""

        rooms = target_rooms(event)
        connections = await self._registry.connections_in(rooms, exclude=exclude)
        frame = {"event": event.name, "data": event.payload}
        delivered = 0
        for websocket in connections:
            if await safe_send_json(websocket, frame):
                delivered += 1
            else:
                realtime_delivery_failures_total.inc(event=event.name)
        realtime_events_total.inc(event=event.name, direction="out")
        logger.debug("Delivered %s to %d connection(s) in %s", event.name, delivered, rooms)
        return delivered

    async def publish_error(self, actor_id: int, message: str) -> int:
        return await self.publish(DomainEvent(EventKind.ERROR, message, actor_id=actor_id))


room_registry = RoomRegistry()
dispatcher = Dispatcher(room_registry)


async def startup_realtime() -> None:
    await room_registry.reset()
    logger.info("Realtime registry initialised")


async def shutdown_realtime() -> None:
    await room_registry.reset()


def get_room_registry() -> RoomRegistry:
    return room_registry


def get_dispatcher() -> Dispatcher:
    return dispatcher
