"""Tests for profile updates, password changes, verification and account recovery."""
from unittest.mock import patch

import pytest
from sqlalchemy import select

from marketplace.account.phone import normalize_phone, pick_channel
from marketplace.config import settings
from marketplace.models import DeletedAccount, RefreshToken, User

from tests.helpers import DEFAULT_PASSWORD, auth_headers

API = "/api/usuarios"


# =============================================================================
# Profile
# =============================================================================

class TestProfile:

    async def test_update_me(self, client, make_user):
        user = await make_user()
        resp = await client.patch(
            f"{API}/me",
            json={"nombre": " Ana Ruiz ", "ciudad": "Puerto Peñasco", "fotoPerfil": "https://cdn/a.jpg"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 200
        usuario = resp.json()["usuario"]
        assert usuario["nombre"] == "Ana Ruiz"
        assert usuario["direccion"] == "Puerto Peñasco"
        assert usuario["fotoPerfil"] == "https://cdn/a.jpg"

    async def test_update_me_requires_fields(self, client, make_user):
        user = await make_user()
        resp = await client.patch(f"{API}/me", json={}, headers=auth_headers(user))
        assert resp.status_code == 400

    async def test_select_profile(self, client, make_user):
        user = await make_user()
        resp = await client.post(f"{API}/seleccionar-perfil", json={"perfil": "3"}, headers=auth_headers(user))
        assert resp.status_code == 201
        assert resp.json()["perfil"] == 3

    async def test_nickname_taken(self, client, make_user):
        await make_user(nickname="tomado")
        user = await make_user()
        resp = await client.patch(f"{API}/me/nickname", json={"nickname": "tomado"}, headers=auth_headers(user))
        assert resp.status_code == 409

        resp = await client.patch(f"{API}/me/nickname", json={"nickname": "libre"}, headers=auth_headers(user))
        assert resp.json()["usuario"]["nickname"] == "libre"

    async def test_nickname_check(self, client, make_user):
        owner = await make_user(nickname="tomado")
        resp = await client.get(f"{API}/nickname/check", params={"nickname": "tomado"})
        assert resp.json() == {"exists": True, "userId": owner.id}

        # The owner checking their own nickname does not count as taken
        resp = await client.get(f"{API}/nickname/check", params={"nickname": "tomado"}, headers=auth_headers(owner))
        assert resp.json()["exists"] is False

    async def test_oauth_unlink(self, client, make_user):
        user = await make_user(autenticado_por_google=True)
        assert (await client.get(f"{API}/me/oauth", headers=auth_headers(user))).json() == {"google": True}
        resp = await client.delete(f"{API}/me/oauth/google", headers=auth_headers(user))
        assert resp.json() == {"ok": True, "google": False}
        assert (await client.delete(f"{API}/me/oauth/facebook", headers=auth_headers(user))).status_code == 400


# =============================================================================
# Password change
# =============================================================================

class TestChangePassword:

    async def test_change_revokes_other_sessions(self, client, make_user, db):
        await make_user(correo="ana@example.com")
        body = {"correo": "ana@example.com", "contraseña": DEFAULT_PASSWORD}
        await client.post(f"{API}/login", json=body)
        rid = (await client.post(f"{API}/login", json=body)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()

        resp = await client.post(
            f"{API}/me/password",
            json={"actual": DEFAULT_PASSWORD, "nueva": "NuevaClave9", "confirm": "NuevaClave9"},
            headers={"Cookie": f"{settings.REFRESH_COOKIE_NAME}={rid}"},
        )
        assert resp.json() == {"ok": True, "revoked": 1}

        live = (await db.execute(select(RefreshToken).where(RefreshToken.revoked_at.is_(None)))).scalars().all()
        assert len(live) == 1

        resp = await client.post(f"{API}/login", json={"correo": "ana@example.com", "contraseña": "NuevaClave9"})
        assert resp.status_code == 200

    async def test_wrong_current_password_counts(self, client, make_user, db):
        user = await make_user()
        resp = await client.post(
            f"{API}/me/password",
            json={"actual": "Incorrecta1", "nueva": "NuevaClave9"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 401
        await db.refresh(user)
        assert user.failed_login_count == 1

    @pytest.mark.parametrize("body", [
        {"actual": DEFAULT_PASSWORD, "nueva": "debil"},
        {"actual": DEFAULT_PASSWORD, "nueva": "NuevaClave9", "confirm": "Otra1234"},
        {"actual": DEFAULT_PASSWORD, "nueva": DEFAULT_PASSWORD},
        {"nueva": "NuevaClave9"},
    ])
    async def test_rejected(self, client, make_user, body):
        user = await make_user()
        resp = await client.post(f"{API}/me/password", json=body, headers=auth_headers(user))
        assert resp.status_code == 400

    async def test_google_account_sets_first_password(self, client, make_user):
        user = await make_user(password=None, autenticado_por_google=True)
        resp = await client.post(f"{API}/me/password", json={"nueva": "NuevaClave9"}, headers=auth_headers(user))
        assert resp.json()["ok"] is True
        session = (await client.get(f"{API}/session", headers=auth_headers(user))).json()
        assert session["hasPassword"] is True


# =============================================================================
# Email verification
# =============================================================================

class TestEmailVerification:

    TOKEN = "ab" * 32

    async def test_resend_and_confirm(self, client, make_user):
        user = await make_user()
        with patch("marketplace.account.verification.random_hex", return_value=self.TOKEN):
            resp = await client.post(f"{API}/reenviar-verificacion", json={"correo": user.correo})
        assert resp.json() == {"mensaje": "Correo de verificación enviado"}

        resp = await client.get(f"{API}/verificar-email", params={"token": self.TOKEN})
        assert resp.status_code == 200
        assert resp.json()["usuario"]["emailVerificado"] is True

        # Tokens are single use
        resp = await client.get(f"{API}/verificar-email", params={"token": self.TOKEN})
        assert resp.status_code == 400

        resp = await client.post(f"{API}/reenviar-verificacion", json={"userId": user.id})
        assert resp.json() == {"mensaje": "Correo ya verificado"}

    async def test_short_token(self, client):
        resp = await client.get(f"{API}/verificar-email", params={"token": "abc"})
        assert resp.status_code == 400

    async def test_unknown_user(self, client):
        resp = await client.post(f"{API}/reenviar-verificacion", json={"correo": "nadie@example.com"})
        assert resp.status_code == 404


# =============================================================================
# Phone verification
# =============================================================================

class TestNormalizePhone:

    @pytest.mark.parametrize("raw,channel,expected", [
        ("638 123 4567", "whatsapp", "+5216381234567"),
        ("+526381234567", "whatsapp", "+5216381234567"),
        ("whatsapp:+5216381234567", "whatsapp", "+5216381234567"),
        ("6381234567", "sms", "+526381234567"),
        ("+14155550100", "sms", "+14155550100"),
        ("", "sms", ""),
    ])
    def test_mexico(self, raw, channel, expected):
        assert normalize_phone(raw, channel, country="MX") == expected

    def test_other_country(self):
        assert normalize_phone("14155550100", "sms", country="US") == "+14155550100"

    def test_pick_channel(self):
        assert pick_channel("SMS") == "sms"
        assert pick_channel("paloma") == "whatsapp"
        assert pick_channel(None) == "whatsapp"


class TestPhoneOtp:

    @pytest.fixture(autouse=True)
    def echo_codes(self, monkeypatch):
        monkeypatch.setattr(settings, "PHONE_ECHO_OTP", True)

    async def test_send_and_verify(self, client, make_user):
        user = await make_user()
        headers = auth_headers(user)
        resp = await client.post(f"{API}/telefono/enviar-codigo", json={"telefono": "6381234567"}, headers=headers)
        assert resp.status_code == 200
        code = resp.json()["code"]
        assert len(code) == settings.PHONE_OTP_LEN

        wrong = "0" * len(code) if code != "0" * len(code) else "1" * len(code)
        resp = await client.post(
            f"{API}/telefono/verificar-codigo", json={"telefono": "6381234567", "codigo": wrong}, headers=headers
        )
        assert resp.status_code == 401

        resp = await client.post(
            f"{API}/telefono/verificar-codigo", json={"telefono": "6381234567", "codigo": code}, headers=headers
        )
        usuario = resp.json()["usuario"]
        assert usuario["telefono"] == "+5216381234567"
        assert usuario["telefonoVerificado"] is True

    async def test_resend_cooldown(self, client, make_user):
        user = await make_user()
        headers = auth_headers(user)
        await client.post(f"{API}/telefono/enviar-codigo", json={"telefono": "6381234567"}, headers=headers)
        resp = await client.post(f"{API}/telefono/enviar-codigo", json={"telefono": "6381234567"}, headers=headers)
        assert resp.status_code == 429
        assert resp.json()["error"]["details"]["retryAfter"] > 0

    async def test_attempt_cap(self, client, make_user):
        user = await make_user()
        headers = auth_headers(user)
        code = (await client.post(
            f"{API}/telefono/enviar-codigo", json={"telefono": "6381234567", "canal": "sms"}, headers=headers
        )).json()["code"]
        wrong = "0" * len(code) if code != "0" * len(code) else "1" * len(code)
        body = {"telefono": "6381234567", "canal": "sms", "codigo": wrong}

        for _ in range(settings.PHONE_OTP_MAX_ATTEMPTS):
            assert (await client.post(f"{API}/telefono/verificar-codigo", json=body, headers=headers)).status_code == 401
        body["codigo"] = code
        resp = await client.post(f"{API}/telefono/verificar-codigo", json=body, headers=headers)
        assert resp.status_code == 429

    async def test_no_code_requested(self, client, make_user):
        user = await make_user()
        resp = await client.post(
            f"{API}/telefono/verificar-codigo",
            json={"telefono": "6381234567", "codigo": "123456"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 404


# =============================================================================
# Deletion and recovery
# =============================================================================

class TestDeleteAndRecover:

    async def test_full_cycle(self, client, make_user, db):
        user = await make_user(correo="ana@example.com", nickname="anita", perfil=2)
        original_id = user.id

        resp = await client.delete(f"{API}/me", headers=auth_headers(user))
        assert resp.json() == {"mensaje": "Cuenta eliminada"}
        db.expire_all()
        assert await db.get(User, original_id) is None
        assert (await db.execute(select(DeletedAccount))).scalar_one().original_id == original_id

        with patch("marketplace.account.recovery.secrets.randbelow", return_value=23456):
            resp = await client.post(f"{API}/recuperar/enviar-codigo", json={"correo": "ANA@example.com"})
        assert resp.status_code == 200

        resp = await client.post(
            f"{API}/recuperar/verificar-codigo",
            json={"correo": "ana@example.com", "codigo": "999999", "contraseña": "Recuperada1"},
        )
        assert resp.status_code == 400

        resp = await client.post(
            f"{API}/recuperar/verificar-codigo",
            json={"correo": "ana@example.com", "codigo": "123456", "contraseña": "Recuperada1"},
        )
        assert resp.status_code == 200
        usuario = resp.json()["usuario"]
        assert usuario["_id"] == original_id
        assert usuario["nickname"] == "anita"
        assert usuario["perfil"] == 2
        assert resp.json()["token"]

        resp = await client.post(f"{API}/login", json={"correo": "ana@example.com", "contraseña": "Recuperada1"})
        assert resp.status_code == 200

    async def test_old_refresh_cookie_dies_with_the_account(self, client, make_user):
        user = await make_user(correo="ana@example.com")
        body = {"correo": "ana@example.com", "contraseña": DEFAULT_PASSWORD}
        old_rid = (await client.post(f"{API}/login", json=body)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()
        cookie = {"Cookie": f"{settings.REFRESH_COOKIE_NAME}={old_rid}"}

        await client.delete(f"{API}/me", headers=auth_headers(user))
        resp = await client.post(f"{API}/refresh", headers=cookie)
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["reason"] == "invalid"

        with patch("marketplace.account.recovery.secrets.randbelow", return_value=23456):
            await client.post(f"{API}/recuperar/enviar-codigo", json={"correo": "ana@example.com"})
        resp = await client.post(
            f"{API}/recuperar/verificar-codigo",
            json={"correo": "ana@example.com", "codigo": "123456", "contraseña": "Recuperada1"},
        )
        new_rid = resp.cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()

        # The pre-deletion cookie stays dead after the restore
        resp = await client.post(f"{API}/refresh", headers=cookie)
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["reason"] == "invalid"
        assert (await client.get(f"{API}/session", headers=cookie)).status_code == 401

        resp = await client.post(f"{API}/refresh", headers={"Cookie": f"{settings.REFRESH_COOKIE_NAME}={new_rid}"})
        assert resp.status_code == 200

    async def test_old_access_token_dies_with_the_account(self, client, make_user):
        user = await make_user(correo="ana@example.com")
        old_headers = auth_headers(user)
        await client.delete(f"{API}/me", headers=old_headers)

        with patch("marketplace.account.recovery.secrets.randbelow", return_value=23456):
            await client.post(f"{API}/recuperar/enviar-codigo", json={"correo": "ana@example.com"})
        await client.post(
            f"{API}/recuperar/verificar-codigo",
            json={"correo": "ana@example.com", "codigo": "123456", "contraseña": "Recuperada1"},
        )
        client.cookies.clear()
        assert (await client.get(f"{API}/session", headers=old_headers)).status_code == 401

    async def test_unknown_email(self, client):
        resp = await client.post(f"{API}/recuperar/enviar-codigo", json={"correo": "nadie@example.com"})
        assert resp.status_code == 404

    async def test_weak_password(self, client):
        resp = await client.post(
            f"{API}/recuperar/verificar-codigo",
            json={"correo": "ana@example.com", "codigo": "123456", "contraseña": "debil"},
        )
        assert resp.status_code == 400
