"""Chat routes."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import get_current_user
from marketplace.chat import schemas, service
from marketplace.database import get_db
from marketplace.errors import BadRequestError
from marketplace.models import Chat, User

router = APIRouter()


async def _ensure_private(data: schemas.EnsurePrivateRequest, current_user: User, db: AsyncSession):
    me = current_user.id
    other = None
    for candidate in (data.usuarioAId, data.usuarioBId):
        if candidate and candidate != me:
            other = candidate
    if not other:
        raise BadRequestError("A valid target user is required")

    chat, created = await service.ensure_private(db, me, other, data.anuncioId)
    users = await service.load_users(db, chat.participantes)
    return JSONResponse(
        status_code=201 if created else 200,
        content=service.serialize_chat(chat, me, users),
    )


@router.post("/ensure-privado")
async def ensure_private_chat(
    data: schemas.EnsurePrivateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Find or create the 1:1 chat with another user (201 when created)."""
    return await _ensure_private(data, current_user, db)


@router.post("/privado")
async def ensure_private_chat_legacy(
    data: schemas.EnsurePrivateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _ensure_private(data, current_user, db)


@router.get("")
async def list_chats(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Caller's chats, favourites first then most recent."""
    chats = await service.list_chats(db, current_user.id)
    users = await service.load_users(db, [p for c in chats for p in (c.participantes or [])])
    return [service.serialize_chat(c, current_user.id, users) for c in chats]


@router.get("/{chat_id}/mensajes")
async def get_messages(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    messages = await service.list_messages(db, chat)
    return [service.serialize_message(m) for m in messages]


@router.post("/{chat_id}/mensajes", status_code=201)
async def send_message(
    chat_id: str,
    data: schemas.SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send a message; participants are notified over the socket."""
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    msg = await service.send_message(
        db,
        chat,
        current_user.id,
        data.texto,
        data.archivos,
        data.replyTo.model_dump(by_alias=True) if data.replyTo else None,
        data.forwardOf,
    )
    payload = service.serialize_message(msg, current_user)
    await service.notify_participants(chat, "chat:newMessage", {"chatId": chat.id, "mensaje": payload})
    return payload


@router.patch("/{chat_id}/background")
async def set_background(
    chat_id: str,
    data: schemas.BackgroundRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    chat.background_url = data.backgroundUrl or ""
    await db.commit()
    return {"ok": True, "backgroundUrl": chat.background_url}


@router.delete("/{chat_id}/me")
async def delete_for_me(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Hide the chat for the caller only."""
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    await service.delete_for_me(db, chat, current_user.id)
    return {"ok": True}


# =============================================================================
# Favourites
# =============================================================================

@router.patch("/{chat_id}/favorite")
async def toggle_favorite(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    return {"ok": True, "favorito": await service.set_favorite(db, chat, current_user.id)}


@router.post("/{chat_id}/favorite")
async def add_favorite(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    return {"ok": True, "favorito": await service.set_favorite(db, chat, current_user.id, True)}


@router.delete("/{chat_id}/favorite")
async def remove_favorite(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    return {"ok": True, "favorito": await service.set_favorite(db, chat, current_user.id, False)}


# =============================================================================
# Pins
# =============================================================================

@router.get("/{chat_id}/pins")
async def get_pins(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    messages = await service.pinned_messages(db, chat, current_user.id)
    return [service.serialize_message(m) for m in messages]


@router.post("/messages/{message_id}/pin")
async def pin_message(message_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Pin for the caller (newest first, at most five)."""
    return {"ok": True, "pins": await service.pin_message(db, message_id, current_user.id)}


@router.delete("/messages/{message_id}/pin")
async def unpin_message(message_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"ok": True, "pins": await service.unpin_message(db, message_id, current_user.id)}


# =============================================================================
# Message edit / delete
# =============================================================================

@router.patch("/messages/{message_id}")
async def edit_message(
    message_id: str,
    data: schemas.EditMessageRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    msg = await service.edit_message(db, message_id, current_user.id, data.texto, data.remove_attachments)
    payload = service.serialize_message(msg, current_user)
    chat = await db.get(Chat, msg.chat_id)
    if chat:
        await service.notify_participants(chat, "chat:messageEdited", {"chatId": chat.id, "mensaje": payload})
    return {"ok": True, "mensaje": payload}


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat_id = await service.delete_message(db, message_id, current_user.id)
    chat = await db.get(Chat, chat_id)
    if chat:
        await service.notify_participants(chat, "chat:messageDeleted", {"chatId": chat_id, "messageId": message_id})
    return {"ok": True}


# =============================================================================
# Block
# =============================================================================

@router.post("/{chat_id}/block")
async def block_chat(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    return {"ok": True, "bloqueado": await service.set_blocked(db, chat, current_user.id, True)}


@router.delete("/{chat_id}/block")
async def unblock_chat(chat_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chat = await service.get_chat_for_participant(db, chat_id, current_user.id)
    return {"ok": True, "bloqueado": await service.set_blocked(db, chat, current_user.id, False)}
