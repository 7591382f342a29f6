"""WebSocket endpoint for real-time chat."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from app.api.deps import get_user_from_token
from app.api.serializers import serialize_conversation, serialize_message, serialize_user
from app.config import get_settings
from app.core.errors import ChatError, ValidationError
from app.core.storage import MediaStore, get_media_store
from app.database import get_db_session
from app.models import OnlineVisibility, ReadReceipts, User
from app.monitoring.metrics import chat_errors_total, realtime_events_total
from app.schemas import SendMessageResponse
from app.schemas.realtime import (
    CallUpdate,
    ClientFrame,
    SeeAllMessages,
    SendGroupMessage,
    SendPrivateMessage,
    SignalData,
    StartCall,
    Typing,
)
from app.services import calls, conversations, messages, relationships
from parley.realtime import (
    DomainEvent,
    EventKind,
    conversation_room,
    get_dispatcher,
    get_room_registry,
    safe_send_json,
)

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

EventHandler = Callable[[Session, User, Dict[str, Any], MediaStore], Awaitable[Dict[str, Any]]]


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"event": "ping", "data": {}}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            idle = now - last_activity >= interval
            quiet = last_ping_sent is None or now - last_ping_sent >= interval
            if interval <= 0 or (idle and quiet):
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _resolve_user(websocket: WebSocket) -> User | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


def _parse(model: type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except SchemaValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise ValidationError(f"Invalid data: {fields}" if fields else "Invalid data") from exc


def presence_audience(db: Session, user: User) -> list[int]:
    """Users told about ``user`` going online or offline."""

    if user.online_visibility == OnlineVisibility.NONE:
        return []
    audience = set(relationships.friend_ids(db, user.id))
    if user.online_visibility == OnlineVisibility.EVERYONE:
        audience.update(conversations.private_partner_ids(db, user.id))
    audience.discard(user.id)
    return sorted(audience)


async def _publish_presence(user_id: int, is_online: bool) -> None:
    with get_db_session() as db:
        user = db.get(User, user_id)
        if user is None:
            return
        audience = presence_audience(db, user)
    if audience:
        await get_dispatcher().publish(
            DomainEvent(
                EventKind.PRESENCE,
                {"userId": user_id, "isOnline": is_online},
                actor_id=user_id,
                recipient_ids=audience,
            )
        )


async def _send_private_message(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(SendPrivateMessage, data)
    result = await messages.send_private(
        db,
        user,
        request.to,
        text=request.text,
        media=request.media.to_payload() if request.media else None,
        reply_to_id=request.reply_message,
        media_store=media_store,
    )
    response = SendMessageResponse(
        message=serialize_message(result.message),
        conversation=serialize_conversation(result.conversation, user.id),
    ).to_wire()
    dispatcher = get_dispatcher()
    await dispatcher.publish(
        DomainEvent(EventKind.PRIVATE_MESSAGE, response, actor_id=user.id, recipient_ids=[request.to])
    )
    await dispatcher.publish(
        DomainEvent(
            EventKind.TYPING,
            {"from": user.id, "isTyping": False},
            actor_id=user.id,
            recipient_ids=[request.to],
        )
    )
    return response


async def _send_group_message(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(SendGroupMessage, data)
    result = await messages.send_group(
        db,
        user,
        request.conversation_id,
        text=request.text,
        media=request.media.to_payload() if request.media else None,
        reply_to_id=request.reply_message,
        media_store=media_store,
    )
    response = SendMessageResponse(
        message=serialize_message(result.message),
        conversation=serialize_conversation(result.conversation, None),
    ).to_wire()
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.GROUP_MESSAGE,
            response,
            actor_id=user.id,
            conversation_id=result.conversation.id,
        )
    )
    return response


async def _typing(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(Typing, data)
    relationships.get_user(db, request.to)
    relationships.ensure_can_interact(db, user.id, request.to)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.TYPING,
            {"from": user.id, "isTyping": request.is_typing},
            actor_id=user.id,
            recipient_ids=[request.to],
        )
    )
    return {"success": True}


async def _see_all_messages(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(SeeAllMessages, data)
    if user.read_receipts == ReadReceipts.DISABLE:
        return {"success": True}
    conversation, updated = messages.mark_seen(db, user, request.to)
    if updated:
        await get_dispatcher().publish(
            DomainEvent(
                EventKind.SEEN,
                {"conversationId": conversation.id, "by": user.id},
                actor_id=user.id,
                recipient_ids=[request.to],
            )
        )
    return {"success": True}


async def _call(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(StartCall, data)
    call_id = calls.start_call(
        db,
        user,
        request.to,
        request.call_type,
        callee_online=get_room_registry().is_connected(request.to),
    )
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.INCOMING_CALL,
            {"callId": call_id, "from": serialize_user(user).to_wire(), "callType": request.call_type},
            actor_id=user.id,
            recipient_ids=[request.to],
        )
    )
    return {"success": True, "callId": call_id}


def _call_update_handler(kind: EventKind) -> EventHandler:
    async def handler(
        db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
    ) -> Dict[str, Any]:
        request = _parse(CallUpdate, data)
        calls.ensure_can_call(db, user.id, request.to)
        await get_dispatcher().publish(
            DomainEvent(
                kind,
                {"callId": request.call_id, "from": user.id},
                actor_id=user.id,
                recipient_ids=[request.to],
            )
        )
        return {"success": True}

    return handler


async def _signal(
    db: Session, user: User, data: Dict[str, Any], media_store: MediaStore
) -> Dict[str, Any]:
    request = _parse(SignalData, data)
    calls.ensure_can_call(db, user.id, request.to)
    calls.check_signal(request.call_id, request.data)
    await get_dispatcher().publish(
        DomainEvent(
            EventKind.SIGNAL,
            {"callId": request.call_id, "signalData": request.data, "from": user.id},
            actor_id=user.id,
            recipient_ids=[request.to],
        )
    )
    return {"success": True}


EVENT_HANDLERS: Dict[str, EventHandler] = {
    "sendPrivateMessage": _send_private_message,
    "sendGroupMessage": _send_group_message,
    "typing": _typing,
    "seeAllMessages": _see_all_messages,
    "call": _call,
    "acceptCall": _call_update_handler(EventKind.CALL_ACCEPTED),
    "endCall": _call_update_handler(EventKind.CALL_ENDED),
    "signal": _signal,
}


async def _send_ack(websocket: WebSocket, ack: int | str | None, data: Dict[str, Any]) -> None:
    if ack is not None:
        await safe_send_json(websocket, {"event": "ack", "ack": ack, "data": data})


async def _report_failure(
    websocket: WebSocket, user_id: int, ack: int | str | None, message: str
) -> None:
    await _send_ack(websocket, ack, {"success": False, "error": message})
    await get_dispatcher().publish_error(user_id, message)


async def handle_frame(websocket: WebSocket, user_id: int, raw_message: str) -> None:
    """Run one client frame and acknowledge it."""

    try:
        payload = json.loads(raw_message)
    except json.JSONDecodeError:
        await _report_failure(websocket, user_id, None, "Invalid payload")
        return
    if not isinstance(payload, dict):
        await _report_failure(websocket, user_id, None, "Invalid payload")
        return

    ack = payload.get("ack")
    try:
        frame = _parse(ClientFrame, payload)
        realtime_events_total.inc(event=frame.event, direction="in")
        if frame.event == "ping":
            await safe_send_json(websocket, {"event": "pong", "data": {}})
            return
        handler = EVENT_HANDLERS.get(frame.event)
        if handler is None:
            raise ValidationError(f"Unknown event '{frame.event}'")
        media_store = websocket.app.dependency_overrides.get(get_media_store, get_media_store)()
        with get_db_session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise ValidationError("No user with this id")
            result = await handler(db, user, frame.data, media_store)
    except ChatError as exc:
        chat_errors_total.inc(error=type(exc).__name__, transport="ws")
        await _report_failure(websocket, user_id, ack, exc.message)
        return
    except Exception:
        logger.exception("Unhandled error while processing websocket frame for user %s", user_id)
        chat_errors_total.inc(error="Unhandled", transport="ws")
        await _report_failure(websocket, user_id, ack, "Something went wrong, try again later")
        return
    await _send_ack(websocket, ack, result)


@router.websocket("/chat")
async def websocket_chat(websocket: WebSocket) -> None:
    """Bidirectional chat socket: client events in, fanned-out events back."""

    user = await _resolve_user(websocket)
    if user is None:
        return

    user_id = user.id
    track_presence = user.online_visibility != OnlineVisibility.NONE
    await websocket.accept()
    registry = get_room_registry()
    became_online = await registry.connect(user_id, websocket, track_presence=track_presence)
    try:
        # Registered before the lookup so a member added meanwhile is joined by either path.
        with get_db_session() as db:
            rooms = [
                conversation_room(group_id)
                for group_id in conversations.group_ids_for_user(db, user_id)
            ]
        for room in rooms:
            await registry.join_user(user_id, room)
        logger.info("User %s connected to chat socket (%d group rooms)", user_id, len(rooms))
        if became_online:
            await _publish_presence(user_id, True)

        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            await handle_frame(websocket, user_id, raw_message)
    finally:
        went_offline = await registry.disconnect(user_id, websocket)
        logger.info("User %s disconnected from chat socket", user_id)
        if went_offline:
            await _publish_presence(user_id, False)
