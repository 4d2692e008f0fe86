"""WebSocket endpoint and client event dispatch."""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy import select

from marketplace.auth.tokens import live_refresh_payload
from marketplace.auth.utils import decode_access_token, issued_before, parse_auth_header
from marketplace.chat import service as chat_service
from marketplace.config import settings
from marketplace.database import AsyncSessionLocal
from marketplace.errors import AppError
from marketplace.models import Chat, User
from marketplace.realtime import coupon_feed, manager, presence
from marketplace.realtime.hub import Connection

logger = logging.getLogger(__name__)

router = APIRouter()

UNAUTHORIZED_CLOSE_CODE = 4401


async def authenticate_socket(websocket: WebSocket) -> Optional[Dict[str, Any]]:
    """
    Resolve the socket owner from ``?token=`` (access token) or the refresh cookie.

    Returns {"uid", "jti", "fam"} or None.
    """
    async with AsyncSessionLocal() as db:
        refresh_payload = await live_refresh_payload(db, websocket.cookies.get(settings.REFRESH_COOKIE_NAME))

        payload = None
        token = parse_auth_header(websocket.query_params.get("token") or websocket.headers.get("authorization"))
        if token:
            payload = decode_access_token(token)
        if not payload:
            payload = refresh_payload
        if not payload or not payload.get("uid"):
            return None

        result = await db.execute(select(User).where(User.id == payload["uid"]))
        user = result.scalar_one_or_none()
    if not user or issued_before(payload, user.logout_at):
        return None

    same_user_cookie = refresh_payload and refresh_payload.get("uid") == user.id
    return {
        "uid": user.id,
        "jti": refresh_payload.get("jti") if same_user_cookie else None,
        "fam": refresh_payload.get("fam") if same_user_cookie else None,
    }


# =============================================================================
# Event handlers
# =============================================================================

async def _chat_send(conn: Connection, data: dict) -> dict:
    async with AsyncSessionLocal() as db:
        chat = await chat_service.get_chat_for_participant(db, str(data.get("chatId") or ""), conn.uid)
        msg = await chat_service.send_message(
            db,
            chat,
            conn.uid,
            data.get("texto"),
            data.get("archivos") or [],
            data.get("replyTo"),
            data.get("forwardOf"),
        )
        author = await db.get(User, conn.uid)
        payload = chat_service.serialize_message(msg, author)
    await chat_service.notify_participants(chat, "chat:newMessage", {"chatId": chat.id, "mensaje": payload})
    return {"ok": True, "mensaje": payload}


async def _chat_typing(conn: Connection, data: dict) -> dict:
    async with AsyncSessionLocal() as db:
        chat = await chat_service.get_chat_for_participant(db, str(data.get("chatId") or ""), conn.uid)
    await chat_service.notify_participants(
        chat, "chat:typing", {"chatId": chat.id, "usuarioId": conn.uid, "typing": bool(data.get("typing"))}
    )
    return {"ok": True}


async def _chat_edit(conn: Connection, data: dict) -> dict:
    texto = data.get("texto")
    if not data.get("messageId") or not isinstance(texto, str):
        return {"ok": False, "error": "Invalid parameters"}
    async with AsyncSessionLocal() as db:
        msg = await chat_service.edit_message(db, str(data["messageId"]), conn.uid, texto)
        author = await db.get(User, conn.uid)
        payload = chat_service.serialize_message(msg, author)
        chat = await db.get(Chat, msg.chat_id)
    if chat:
        await chat_service.notify_participants(chat, "chat:messageEdited", {"chatId": chat.id, "mensaje": payload})
    return {"ok": True, "mensaje": payload}


async def _chat_delete(conn: Connection, data: dict) -> dict:
    message_id = str(data.get("messageId") or "")
    if not message_id:
        return {"ok": False, "error": "messageId is required"}
    async with AsyncSessionLocal() as db:
        chat_id = await chat_service.delete_message(db, message_id, conn.uid)
        chat = await db.get(Chat, chat_id)
    if chat:
        await chat_service.notify_participants(chat, "chat:messageDeleted", {"chatId": chat_id, "messageId": message_id})
    return {"ok": True}


async def _user_activity(conn: Connection, data: dict) -> None:
    await presence.activity(conn.uid)


async def _status_request(conn: Connection, data: dict) -> None:
    await manager.send(conn, "user:status:snapshot", presence.snapshot())


async def _coupons_recent(conn: Connection, data: dict) -> None:
    await coupon_feed.send_recent(conn)


EVENT_HANDLERS: Dict[str, Callable[[Connection, dict], Awaitable[Any]]] = {
    "chat:send": _chat_send,
    "chat:typing": _chat_typing,
    "chat:editMessage": _chat_edit,
    "chat:deleteMessage": _chat_delete,
    "user:activity": _user_activity,
    "user:status:request": _status_request,
    "cupones:getRecent": _coupons_recent,
}


async def dispatch(conn: Connection, raw: str) -> None:
    """Route one client frame to its handler and send the ack, if requested."""
    try:
        message = json.loads(raw)
    except ValueError:
        logger.debug(f"Ignoring non-JSON frame from {conn.id}")
        return
    if not isinstance(message, dict):
        return

    event = message.get("event")
    data = message.get("data") if isinstance(message.get("data"), dict) else {}
    ack = message.get("ack")

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        if ack is not None:
            await manager.send(conn, "ack", {"ok": False, "error": f"Unknown event: {event}"}, ack=ack)
        return

    try:
        result = await handler(conn, data)
    except AppError as e:
        result = {"ok": False, "error": e.message}
    except Exception:
        logger.exception(f"WS handler {event} failed for user {conn.uid}")
        result = {"ok": False, "error": "Internal error"}

    if ack is not None:
        await manager.send(conn, "ack", result or {"ok": True}, ack=ack)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    identity = await authenticate_socket(websocket)
    if not identity:
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    conn = manager.register(websocket, identity["uid"], identity["jti"], identity["fam"])
    await presence.connected(conn.uid)
    await coupon_feed.send_recent(conn, only_if_any=True)

    try:
        while True:
            raw = await websocket.receive_text()
            await dispatch(conn, raw)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(conn)
        await presence.disconnected(conn.uid)
