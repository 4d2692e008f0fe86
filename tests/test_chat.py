"""Tests for private chats, messages, pins and per-user chat state."""
import json

import pytest

from marketplace.chat import service
from marketplace.errors import BadRequestError, ForbiddenError
from marketplace.realtime import manager

from tests.helpers import FakeWebSocket, auth_headers

API = "/api/chat"


class TestNormalisation:

    def test_sanitize_text(self):
        assert service.sanitize_text("  hola  ") == "hola"
        assert service.sanitize_text(None) == ""
        assert len(service.sanitize_text("x" * 5000)) == service.MAX_TEXT_LENGTH

    def test_attachment_from_filename(self):
        out = service.normalize_attachment({"filename": "foto.JPG"})
        assert out["url"] == "/uploads/foto.JPG"
        assert out["thumbUrl"] == "/uploads/foto_sm.webp"
        assert out["isImage"] is True
        assert out["name"] == "foto.JPG"

    def test_attachment_mime_type(self):
        out = service.normalize_attachment({"url": "https://cdn/x", "mimeType": "image/png"})
        assert out["isImage"] is True
        assert out["thumbUrl"] == ""

    def test_non_image(self):
        out = service.normalize_attachment({"fileUrl": "https://cdn/doc.pdf", "name": "doc.pdf"})
        assert out["url"] == "https://cdn/doc.pdf"
        assert out["isImage"] is False


@pytest.fixture
async def pair(make_user):
    return await make_user(nickname="ana"), await make_user(nickname="beto")


class TestEnsurePrivate:

    async def test_same_chat_regardless_of_order(self, db, pair):
        ana, beto = pair
        chat, created = await service.ensure_private(db, ana.id, beto.id)
        again, created_again = await service.ensure_private(db, beto.id, ana.id)
        assert created and not created_again
        assert again.id == chat.id
        assert sorted([chat.usuario_a, chat.usuario_b]) == [chat.usuario_a, chat.usuario_b]

    async def test_scoped_by_ad(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id, anuncio_id="ad1")
        other, created = await service.ensure_private(db, ana.id, beto.id, anuncio_id="ad2")
        assert created and other.id != chat.id

    async def test_self_chat_rejected(self, db, pair):
        ana, _ = pair
        with pytest.raises(BadRequestError):
            await service.ensure_private(db, ana.id, ana.id)

    async def test_route_status_codes(self, client, pair):
        ana, beto = pair
        body = {"usuarioAId": ana.id, "usuarioBId": beto.id}
        first = await client.post(f"{API}/ensure-privado", json=body, headers=auth_headers(ana))
        assert first.status_code == 201
        assert first.json()["tipo"] == "privado"
        second = await client.post(f"{API}/privado", json=body, headers=auth_headers(ana))
        assert second.status_code == 200
        assert second.json()["_id"] == first.json()["_id"]

    async def test_unknown_target(self, client, pair):
        ana, _ = pair
        resp = await client.post(f"{API}/ensure-privado", json={"usuarioBId": "user_x"}, headers=auth_headers(ana))
        assert resp.status_code == 404


class TestMessages:

    async def test_send_notifies_participants(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        socket = FakeWebSocket()
        manager.register(socket, beto.id)

        resp = await client.post(
            f"{API}/{chat.id}/mensajes",
            json={"texto": "  hola beto  "},
            headers=auth_headers(ana),
        )
        assert resp.status_code == 201
        assert resp.json()["texto"] == "hola beto"
        assert resp.json()["emisor"]["_id"] == ana.id

        frame = json.loads(socket.sent[0])
        assert frame["event"] == "chat:newMessage"
        assert frame["data"]["chatId"] == chat.id

        messages = (await client.get(f"{API}/{chat.id}/mensajes", headers=auth_headers(beto))).json()
        assert [m["texto"] for m in messages] == ["hola beto"]

        chats = (await client.get(API, headers=auth_headers(beto))).json()
        assert chats[0]["ultimoMensaje"] == "hola beto"

    async def test_empty_message_rejected(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        with pytest.raises(BadRequestError):
            await service.send_message(db, chat, ana.id, "   ", [])

    async def test_attachment_only_preview(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        await service.send_message(db, chat, ana.id, "", [{"url": "https://cdn/a.png"}])
        assert chat.ultimo_mensaje == "[archivo]"

    async def test_reply_snapshot_is_completed(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        original = await service.send_message(db, chat, ana.id, "¿Sigue disponible?")
        reply = await service.send_message(db, chat, beto.id, "Sí", reply_to={"_id": original.id})
        assert reply.reply_to["texto"] == "¿Sigue disponible?"
        assert reply.reply_to["autor"]["_id"] == ana.id

    async def test_outsider_cannot_read(self, client, db, pair, make_user):
        ana, beto = pair
        outsider = await make_user()
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        resp = await client.get(f"{API}/{chat.id}/mensajes", headers=auth_headers(outsider))
        assert resp.status_code == 403

    async def test_edit_and_delete_own_only(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        msg = await service.send_message(db, chat, ana.id, "hola")

        resp = await client.patch(f"{API}/messages/{msg.id}", json={"texto": "hola!"}, headers=auth_headers(beto))
        assert resp.status_code == 403

        resp = await client.patch(f"{API}/messages/{msg.id}", json={"texto": "hola!"}, headers=auth_headers(ana))
        assert resp.json()["mensaje"]["texto"] == "hola!"
        assert resp.json()["mensaje"]["editedAt"]

        resp = await client.delete(f"{API}/messages/{msg.id}", headers=auth_headers(ana))
        assert resp.json() == {"ok": True}
        assert (await client.get(f"{API}/{chat.id}/mensajes", headers=auth_headers(ana))).json() == []

    async def test_edit_requires_text(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        msg = await service.send_message(db, chat, ana.id, "hola")
        with pytest.raises(BadRequestError):
            await service.edit_message(db, msg.id, ana.id, "  ")


class TestPins:

    async def test_newest_first_and_capped(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        ids = [(await service.send_message(db, chat, ana.id, f"m{n}")).id for n in range(6)]

        for message_id in ids:
            pins = await service.pin_message(db, message_id, ana.id)
        assert pins == list(reversed(ids))[:service.MAX_PINS]

        # Pins are per user
        assert service.get_pins(chat, beto.id) == []

        pins = await service.unpin_message(db, ids[-1], ana.id)
        assert ids[-1] not in pins

    async def test_pinning_twice_is_idempotent(self, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        msg = await service.send_message(db, chat, ana.id, "hola")
        await service.pin_message(db, msg.id, beto.id)
        assert await service.pin_message(db, msg.id, beto.id) == [msg.id]

    async def test_outsider_cannot_pin(self, db, pair, make_user):
        ana, beto = pair
        outsider = await make_user()
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        msg = await service.send_message(db, chat, ana.id, "hola")
        with pytest.raises(ForbiddenError):
            await service.pin_message(db, msg.id, outsider.id)

    async def test_pins_route(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        msg = await service.send_message(db, chat, ana.id, "hola")
        resp = await client.post(f"{API}/messages/{msg.id}/pin", headers=auth_headers(beto))
        assert resp.json() == {"ok": True, "pins": [msg.id]}
        pinned = (await client.get(f"{API}/{chat.id}/pins", headers=auth_headers(beto))).json()
        assert [m["_id"] for m in pinned] == [msg.id]


class TestChatState:

    async def test_favorite_toggle_and_sort(self, client, db, pair, make_user):
        ana, beto = pair
        carla = await make_user()
        fav, _ = await service.ensure_private(db, ana.id, beto.id)
        recent, _ = await service.ensure_private(db, ana.id, carla.id)
        await service.send_message(db, recent, carla.id, "reciente")

        resp = await client.patch(f"{API}/{fav.id}/favorite", headers=auth_headers(ana))
        assert resp.json()["favorito"] is True

        chats = (await client.get(API, headers=auth_headers(ana))).json()
        assert [c["_id"] for c in chats] == [fav.id, recent.id]
        assert chats[0]["isFavorite"] is True

        resp = await client.patch(f"{API}/{fav.id}/favorite", headers=auth_headers(ana))
        assert resp.json()["favorito"] is False

    async def test_explicit_favorite(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        assert (await client.post(f"{API}/{chat.id}/favorite", headers=auth_headers(ana))).json()["favorito"] is True
        assert (await client.post(f"{API}/{chat.id}/favorite", headers=auth_headers(ana))).json()["favorito"] is True
        assert (await client.delete(f"{API}/{chat.id}/favorite", headers=auth_headers(ana))).json()["favorito"] is False

    async def test_delete_for_me_and_restore(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        await client.delete(f"{API}/{chat.id}/me", headers=auth_headers(ana))
        assert (await client.get(API, headers=auth_headers(ana))).json() == []
        assert len((await client.get(API, headers=auth_headers(beto))).json()) == 1

        # Opening the chat again brings it back
        db.expire_all()
        await service.ensure_private(db, ana.id, beto.id)
        assert len((await client.get(API, headers=auth_headers(ana))).json()) == 1

    async def test_block(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        resp = await client.post(f"{API}/{chat.id}/block", headers=auth_headers(ana))
        assert resp.json() == {"ok": True, "bloqueado": True}
        chats = (await client.get(API, headers=auth_headers(ana))).json()
        assert chats[0]["isBlocked"] is True
        resp = await client.delete(f"{API}/{chat.id}/block", headers=auth_headers(ana))
        assert resp.json()["bloqueado"] is False

    async def test_background(self, client, db, pair):
        ana, beto = pair
        chat, _ = await service.ensure_private(db, ana.id, beto.id)
        resp = await client.patch(
            f"{API}/{chat.id}/background", json={"backgroundUrl": "https://cdn/bg.jpg"}, headers=auth_headers(ana)
        )
        assert resp.json() == {"ok": True, "backgroundUrl": "https://cdn/bg.jpg"}
