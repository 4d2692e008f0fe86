"""
Chat service - shared by the REST routes and the WebSocket events.

Private chats store their two participants sorted in ``usuario_a`` /
``usuario_b`` so a pair maps to a single row (per ad, when scoped).
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.errors import BadRequestError, ForbiddenError, NotFoundError
from marketplace.media.cloudinary import get_cloudinary, public_id_from_url
from marketplace.models import Chat, Message, User, as_utc
from marketplace.realtime.hub import manager

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 4000
MAX_PINS = 5
MAX_CHATS = 200

IMAGE_NAME_RE = re.compile(r"\.(png|jpe?g|gif|webp|bmp|svg)$", re.IGNORECASE)
EXTENSION_RE = re.compile(r"(\.[a-z0-9]+)$", re.IGNORECASE)


# =============================================================================
# Normalisation
# =============================================================================

def sanitize_text(texto: Any) -> str:
    if not isinstance(texto, str):
        return ""
    return texto.strip()[:MAX_TEXT_LENGTH]


def normalize_attachment(a: Dict[str, Any]) -> Dict[str, Any]:
    """Fill url / thumbUrl / isImage / name from whatever the client sent."""
    out = dict(a or {})
    filename = a.get("filename") or ""

    url = a.get("url") or a.get("fileUrl") or a.get("location") or a.get("src") or a.get("path") or ""
    if not url and filename:
        url = filename if filename.startswith("/uploads/") else (
            f"/uploads/{filename}" if not filename.startswith("/") else ""
        )
    out["url"] = url

    thumb = a.get("thumbUrl") or a.get("thumbnail") or ""
    if not thumb and isinstance(url, str) and "/uploads/" in url:
        thumb = EXTENSION_RE.sub("_sm.webp", url)
    out["thumbUrl"] = thumb

    mime = str(a.get("mimeType") or a.get("contentType") or a.get("type") or "").lower()
    out["isImage"] = (
        a.get("isImage") is True
        or mime.startswith("image/")
        or bool(IMAGE_NAME_RE.search(str(a.get("name") or filename or url)))
    )
    out["name"] = a.get("name") or filename or a.get("originalName") or ""
    return out


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_user(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "_id": user.id,
        "nombre": user.nombre,
        "nickname": user.nickname,
        "correo": user.correo,
        "fotoPerfil": user.foto_perfil,
        "tipo": user.tipo,
    }


def serialize_message(msg: Message, emisor: Optional[User] = None) -> dict:
    data = {
        "_id": msg.id,
        "chat": msg.chat_id,
        "emisor": serialize_user(emisor) if emisor else msg.emisor_id,
        "texto": msg.texto or "",
        "archivos": [normalize_attachment(a) for a in (msg.archivos or [])],
        "replyTo": msg.reply_to,
        "forwardOf": {"_id": msg.forward_of} if msg.forward_of else None,
        "leidoPor": list(msg.leido_por or []),
        "editedAt": _iso(msg.edited_at),
        "createdAt": _iso(msg.created_at),
        "updatedAt": _iso(msg.updated_at),
    }
    return data


def serialize_chat(chat: Chat, uid: str, users: Dict[str, User]) -> dict:
    return {
        "_id": chat.id,
        "tipo": chat.tipo,
        "participantes": [serialize_user(users.get(p)) or {"_id": p} for p in chat.participantes or []],
        "anuncioId": chat.anuncio_id,
        "favoritesBy": list(chat.favorites_by or []),
        "blockedBy": list(chat.blocked_by or []),
        "deletedFor": list(chat.deleted_for or []),
        "pinsByUser": dict(chat.pins_by_user or {}),
        "backgroundUrl": chat.background_url or "",
        "ultimoMensaje": chat.ultimo_mensaje or "",
        "ultimoMensajeAt": _iso(chat.ultimo_mensaje_at),
        "createdAt": _iso(chat.created_at),
        "updatedAt": _iso(chat.updated_at),
        "isFavorite": uid in (chat.favorites_by or []),
        "isBlocked": uid in (chat.blocked_by or []),
    }


async def load_users(db: AsyncSession, ids: Iterable[str]) -> Dict[str, User]:
    ids = list({i for i in ids if i})
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


# =============================================================================
# Lookup
# =============================================================================

async def get_chat_for_participant(db: AsyncSession, chat_id: str, uid: str) -> Chat:
    chat = await db.get(Chat, chat_id)
    if not chat:
        raise NotFoundError("Chat not found")
    if uid not in (chat.participantes or []):
        raise ForbiddenError("Not a participant of this chat")
    return chat


async def get_own_message(db: AsyncSession, message_id: str, uid: str) -> Message:
    msg = await db.get(Message, message_id)
    if not msg:
        raise NotFoundError("Message not found")
    if msg.emisor_id != uid:
        raise ForbiddenError("You can only change your own messages")
    return msg


# =============================================================================
# Chats
# =============================================================================

async def ensure_private(
    db: AsyncSession,
    me: str,
    other: str,
    anuncio_id: Optional[str] = None,
) -> Tuple[Chat, bool]:
    """Find or create the 1:1 chat between two users. Returns (chat, created)."""
    if not other or other == me:
        raise BadRequestError("A valid target user is required")

    users = await load_users(db, [me, other])
    if me not in users or other not in users:
        raise NotFoundError("User not found")

    a, b = sorted([me, other])
    query = select(Chat).where(Chat.tipo == "privado", Chat.usuario_a == a, Chat.usuario_b == b)
    if anuncio_id:
        query = query.where(Chat.anuncio_id == anuncio_id)
    result = await db.execute(query.order_by(Chat.created_at).limit(1))
    chat = result.scalar_one_or_none()

    if chat:
        if me in (chat.deleted_for or []):
            chat.deleted_for = [x for x in chat.deleted_for if x != me]
            await db.commit()
        return chat, False

    chat = Chat(
        tipo="privado",
        participantes=[me, other],
        usuario_a=a,
        usuario_b=b,
        anuncio_id=anuncio_id or None,
        favorites_by=[],
        deleted_for=[],
        pins_by_user={},
        blocked_by=[],
    )
    db.add(chat)
    await db.commit()
    logger.info(f"Private chat {chat.id} created between {me} and {other}")
    return chat, True


def _chat_sort_key(chat: Chat, uid: str):
    last = as_utc(chat.ultimo_mensaje_at) or datetime.min.replace(tzinfo=timezone.utc)
    updated = as_utc(chat.updated_at) or datetime.min.replace(tzinfo=timezone.utc)
    return (uid in (chat.favorites_by or []), last, updated)


async def list_chats(db: AsyncSession, uid: str) -> List[Chat]:
    """Caller's chats not deleted for them: favourites first, then most recent."""
    result = await db.execute(
        select(Chat).where(or_(Chat.usuario_a == uid, Chat.usuario_b == uid))
    )
    chats = [
        c for c in result.scalars().all()
        if uid in (c.participantes or []) and uid not in (c.deleted_for or [])
    ]
    chats.sort(key=lambda c: _chat_sort_key(c, uid), reverse=True)
    return chats[:MAX_CHATS]


async def delete_for_me(db: AsyncSession, chat: Chat, uid: str) -> None:
    if uid not in (chat.deleted_for or []):
        chat.deleted_for = [*(chat.deleted_for or []), uid]
        await db.commit()


async def set_favorite(db: AsyncSession, chat: Chat, uid: str, value: Optional[bool] = None) -> bool:
    """Set or (with value None) toggle the favourite flag. Returns the new state."""
    current = uid in (chat.favorites_by or [])
    target = (not current) if value is None else value
    if target and not current:
        chat.favorites_by = [*(chat.favorites_by or []), uid]
    elif not target and current:
        chat.favorites_by = [x for x in chat.favorites_by if x != uid]
    await db.commit()
    return target


async def set_blocked(db: AsyncSession, chat: Chat, uid: str, value: bool) -> bool:
    current = uid in (chat.blocked_by or [])
    if value and not current:
        chat.blocked_by = [*(chat.blocked_by or []), uid]
    elif not value and current:
        chat.blocked_by = [x for x in chat.blocked_by if x != uid]
    await db.commit()
    return value


# =============================================================================
# Messages
# =============================================================================

async def _reply_snapshot(db: AsyncSession, reply: Dict[str, Any]) -> dict:
    """Complete a reply reference with the original text and author."""
    texto = reply.get("texto") or reply.get("preview") or ""
    autor = reply.get("autor")
    if autor and not isinstance(autor, dict):
        autor = {"_id": str(autor)}

    original_id = reply.get("_id")
    if (not texto or not autor) and original_id:
        original = await db.get(Message, original_id)
        if original:
            texto = texto or original.texto or ""
            if not autor:
                author = await db.get(User, original.emisor_id)
                if author:
                    autor = {"_id": author.id, "nombre": author.nombre, "nickname": author.nickname}

    return {
        "_id": original_id,
        "texto": texto or "",
        "preview": reply.get("preview") or texto or "",
        "autor": autor or None,
    }


async def send_message(
    db: AsyncSession,
    chat: Chat,
    uid: str,
    texto: Any,
    archivos: Optional[List[dict]] = None,
    reply_to: Optional[dict] = None,
    forward_of: Any = None,
) -> Message:
    """Persist a message and update the chat preview."""
    text = sanitize_text(texto)
    attachments = [normalize_attachment(a) for a in (archivos or []) if isinstance(a, dict)]
    if not text and not attachments:
        raise BadRequestError("Message needs text or attachments")

    if isinstance(forward_of, dict):
        forward_of = forward_of.get("_id")

    msg = Message(
        chat_id=chat.id,
        emisor_id=uid,
        texto=text,
        archivos=attachments,
        reply_to=await _reply_snapshot(db, reply_to) if reply_to else None,
        forward_of=str(forward_of) if forward_of else None,
        leido_por=[],
    )
    db.add(msg)

    chat.ultimo_mensaje = text or ("[archivo]" if attachments else "")
    chat.ultimo_mensaje_at = datetime.now(timezone.utc)
    await db.commit()
    return msg


async def list_messages(db: AsyncSession, chat: Chat) -> List[Message]:
    result = await db.execute(
        select(Message).where(Message.chat_id == chat.id).order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


async def _destroy_attachments(attachments: List[dict]) -> None:
    ids = [a.get("public_id") or public_id_from_url(a.get("url") or a.get("thumbUrl")) for a in attachments]
    await get_cloudinary().destroy_many([i for i in ids if i])


async def edit_message(
    db: AsyncSession,
    message_id: str,
    uid: str,
    texto: Any = None,
    remove_attachments: bool = False,
) -> Message:
    msg = await get_own_message(db, message_id, uid)
    text = sanitize_text(texto)
    if not text and not remove_attachments:
        raise BadRequestError("Invalid text")

    if text:
        msg.texto = text
    if remove_attachments and msg.archivos:
        await _destroy_attachments(list(msg.archivos))
        msg.archivos = []
    msg.edited_at = datetime.now(timezone.utc)
    await db.commit()
    return msg


async def delete_message(db: AsyncSession, message_id: str, uid: str) -> str:
    """Delete own message and its Cloudinary attachments. Returns the chat id."""
    msg = await get_own_message(db, message_id, uid)
    chat_id = msg.chat_id
    if msg.archivos:
        await _destroy_attachments(list(msg.archivos))
    await db.delete(msg)
    await db.commit()
    return chat_id


# =============================================================================
# Pins
# =============================================================================

def get_pins(chat: Chat, uid: str) -> List[str]:
    raw = (chat.pins_by_user or {}).get(uid) or []
    return [str(x) for x in raw]


async def pin_message(db: AsyncSession, message_id: str, uid: str) -> List[str]:
    msg = await db.get(Message, message_id)
    if not msg:
        raise NotFoundError("Message not found")
    chat = await get_chat_for_participant(db, msg.chat_id, uid)

    current = get_pins(chat, uid)
    if message_id in current:
        return current
    pins = [message_id, *current][:MAX_PINS]
    chat.pins_by_user = {**(chat.pins_by_user or {}), uid: pins}
    await db.commit()
    return pins


async def unpin_message(db: AsyncSession, message_id: str, uid: str) -> List[str]:
    msg = await db.get(Message, message_id)
    if not msg:
        raise NotFoundError("Message not found")
    chat = await get_chat_for_participant(db, msg.chat_id, uid)

    pins = [x for x in get_pins(chat, uid) if x != message_id]
    chat.pins_by_user = {**(chat.pins_by_user or {}), uid: pins}
    await db.commit()
    return pins


async def pinned_messages(db: AsyncSession, chat: Chat, uid: str) -> List[Message]:
    ids = get_pins(chat, uid)
    if not ids:
        return []
    result = await db.execute(
        select(Message).where(and_(Message.id.in_(ids), Message.chat_id == chat.id)).order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


# =============================================================================
# Fan-out
# =============================================================================

async def notify_participants(chat: Chat, event: str, data: dict) -> int:
    return await manager.emit_to_users(chat.participantes or [], event, data)
