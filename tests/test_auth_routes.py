"""Tests for registration, login, refresh rotation and the Google sign in."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from google.auth import exceptions as google_auth_exceptions
from sqlalchemy import select, update

from marketplace.auth.google import verify_google_credential
from marketplace.auth.tokens import RefreshError, issue_session, rotate_refresh
from marketplace.auth.utils import create_refresh_token, decode_refresh_token
from marketplace.config import settings
from marketplace.errors import BadRequestError, UnauthorizedError
from marketplace.models import RefreshToken, User

from tests.helpers import DEFAULT_PASSWORD, auth_headers

API = "/api/usuarios"


async def register(client, correo="ana@example.com", password="secreto1", **extra):
    body = {"correo": correo, "contraseña": password, "nombre": "Ana", **extra}
    return await client.post(f"{API}/registro", json=body)


def cookie_header(value: str) -> dict:
    return {"Cookie": f"{settings.REFRESH_COOKIE_NAME}={value}"}


# =============================================================================
# Registration
# =============================================================================

class TestRegister:

    async def test_register_creates_session(self, client):
        resp = await register(client, tipo="comerciante", perfil=2)
        assert resp.status_code == 201
        body = resp.json()
        assert body["mensaje"] == "Registro Exitoso"
        assert body["usuario"]["correo"] == "ana@example.com"
        assert body["usuario"]["tipo"] == "comerciante"
        assert body["usuario"]["perfil"] == 2
        assert body["usuario"]["emailVerificado"] is False
        assert body["token"]
        assert body["expiresIn"] == settings.access_ttl_seconds
        assert resp.cookies.get(settings.REFRESH_COOKIE_NAME)

    async def test_register_normalizes_email_and_defaults(self, client, db):
        resp = await register(client, correo="  ANA@Example.COM ")
        assert resp.status_code == 201
        usuario = resp.json()["usuario"]
        assert usuario["correo"] == "ana@example.com"
        assert usuario["tipo"] == "usuario"
        assert usuario["perfil"] == 1
        assert usuario["nickname"].startswith("ana")

        user = (await db.execute(select(User))).scalar_one()
        assert user.email_verif_token_hash

    async def test_register_duplicate(self, client):
        await register(client, tipo="comerciante")
        resp = await register(client)
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "DUPLICATE"
        assert error["details"]["tipoCoincide"] == "comerciante"

    @pytest.mark.parametrize("body", [
        {"correo": "ana@example.com", "contraseña": "secreto1"},
        {"correo": "no-es-correo", "contraseña": "secreto1", "nombre": "Ana"},
        {"correo": "ana@example.com", "contraseña": "corta", "nombre": "Ana"},
    ])
    async def test_register_validation(self, client, body):
        resp = await client.post(f"{API}/registro", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "BAD_REQUEST"

    async def test_email_failure_does_not_fail_registration(self, client):
        failing = AsyncMock()
        failing.send.return_value.success = False
        failing.send.return_value.error = "smtp down"
        with patch("marketplace.account.verification.get_email_provider", return_value=failing):
            resp = await register(client)
        assert resp.status_code == 201


# =============================================================================
# Login and lockout
# =============================================================================

class TestLogin:

    async def test_login_with_email(self, client, make_user):
        user = await make_user(correo="pepe@example.com")
        resp = await client.post(f"{API}/login", json={"correo": "PEPE@example.com", "contraseña": DEFAULT_PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["usuario"]["_id"] == user.id
        assert resp.cookies.get(settings.REFRESH_COOKIE_NAME)

    async def test_login_with_nickname(self, client, make_user):
        await make_user(nickname="pepito")
        resp = await client.post(f"{API}/login", json={"login": "pepito", "password": DEFAULT_PASSWORD})
        assert resp.status_code == 200

    async def test_unknown_account(self, client):
        resp = await client.post(f"{API}/login", json={"correo": "nadie@example.com", "contraseña": "x"})
        assert resp.status_code == 404

    async def test_missing_credentials(self, client):
        resp = await client.post(f"{API}/login", json={"correo": "a@example.com"})
        assert resp.status_code == 400

    async def test_wrong_password_reports_remaining_attempts(self, client, make_user):
        await make_user(correo="pepe@example.com")
        resp = await client.post(f"{API}/login", json={"correo": "pepe@example.com", "contraseña": "mala"})
        assert resp.status_code == 401
        details = resp.json()["error"]["details"]
        assert details["remainingAttempts"] == settings.LOGIN_MAX_ATTEMPTS - 1
        assert details["lockedUntil"] is None

    async def test_lockout_after_max_attempts(self, client, make_user):
        await make_user(correo="pepe@example.com")
        body = {"correo": "pepe@example.com", "contraseña": "mala"}
        for _ in range(settings.LOGIN_MAX_ATTEMPTS - 1):
            assert (await client.post(f"{API}/login", json=body)).status_code == 401

        resp = await client.post(f"{API}/login", json=body)
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["remainingAttempts"] == 0
        assert resp.json()["error"]["details"]["lockedUntil"]

        # Even the right password is refused while locked
        resp = await client.post(f"{API}/login", json={"correo": "pepe@example.com", "contraseña": DEFAULT_PASSWORD})
        assert resp.status_code == 423
        assert resp.json()["error"]["details"]["lockedUntil"]

    async def test_success_resets_counter(self, client, make_user, db):
        user = await make_user(correo="pepe@example.com")
        await client.post(f"{API}/login", json={"correo": "pepe@example.com", "contraseña": "mala"})
        await client.post(f"{API}/login", json={"correo": "pepe@example.com", "contraseña": DEFAULT_PASSWORD})
        await db.refresh(user)
        assert user.failed_login_count == 0
        assert user.lock_until is None


# =============================================================================
# Refresh rotation
# =============================================================================

class TestRefresh:

    async def test_refresh_rotates_cookie(self, client):
        first = (await register(client)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()

        resp = await client.post(f"{API}/refresh", headers=cookie_header(first))
        assert resp.status_code == 200
        assert resp.json()["token"]
        second = resp.cookies.get(settings.REFRESH_COOKIE_NAME)
        assert second and second != first

    async def test_refresh_without_cookie(self, client):
        resp = await client.post(f"{API}/refresh")
        assert resp.status_code == 401

    async def test_invalid_cookie(self, client):
        resp = await client.post(f"{API}/refresh", headers=cookie_header("garbage"))
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["reason"] == "invalid"

    async def test_reuse_revokes_family(self, client, db):
        first = (await register(client)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()
        second = (await client.post(f"{API}/refresh", headers=cookie_header(first))).cookies.get(
            settings.REFRESH_COOKIE_NAME
        )
        client.cookies.clear()

        # Presenting the consumed token again is reuse
        resp = await client.post(f"{API}/refresh", headers=cookie_header(first))
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["reason"] == "reused"

        # ...and the legitimate successor died with its family
        client.cookies.clear()
        resp = await client.post(f"{API}/refresh", headers=cookie_header(second))
        assert resp.status_code == 401

        rows = (await db.execute(select(RefreshToken))).scalars().all()
        assert rows and all(r.revoked_at is not None for r in rows)
        assert any(r.revoke_reason == "reuse" for r in rows)


# =============================================================================
# Rotation edge cases
# =============================================================================

class TestRotationEdges:

    async def test_unstored_token_is_adopted_and_rotated(self, client, make_user, db):
        user = await make_user()
        legacy, jti, _, _ = create_refresh_token(user.id)

        resp = await client.post(f"{API}/refresh", headers=cookie_header(legacy))
        assert resp.status_code == 200
        adopted = (await db.execute(select(RefreshToken).where(RefreshToken.jti == jti))).scalar_one()
        assert adopted.revoke_reason == "rotated"

        # Once adopted and consumed, presenting it again is reuse
        client.cookies.clear()
        resp = await client.post(f"{API}/refresh", headers=cookie_header(legacy))
        assert resp.json()["error"]["details"]["reason"] == "reused"

    async def test_unstored_token_of_missing_user_is_invalid(self, client, db):
        legacy, _, _, _ = create_refresh_token("usr_gone")
        resp = await client.post(f"{API}/refresh", headers=cookie_header(legacy))
        assert resp.status_code == 401
        assert resp.json()["error"]["details"]["reason"] == "invalid"
        assert (await db.execute(select(RefreshToken))).scalars().all() == []

    async def test_token_older_than_logout_everywhere_is_invalid(self, client, make_user, db):
        user = await make_user()
        legacy, _, _, _ = create_refresh_token(user.id)
        user.logout_at = datetime.now(timezone.utc) + timedelta(seconds=1)
        await db.commit()

        resp = await client.post(f"{API}/refresh", headers=cookie_header(legacy))
        assert resp.json()["error"]["details"]["reason"] == "invalid"

    async def test_hash_mismatch_is_reuse(self, client, db):
        first = (await register(client)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()
        await db.execute(update(RefreshToken).values(token_hash="0" * 64))
        await db.commit()

        resp = await client.post(f"{API}/refresh", headers=cookie_header(first))
        assert resp.json()["error"]["details"]["reason"] == "reused"
        db.expire_all()
        row = (await db.execute(select(RefreshToken))).scalar_one()
        assert row.revoke_reason == "reuse"

    async def test_concurrent_consumer_loses(self, make_user, db):
        user = await make_user()
        session = await issue_session(db, user)
        # Load the row, then consume it behind this session's back
        row = (await db.execute(select(RefreshToken).where(RefreshToken.jti == session.jti))).scalar_one()
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == row.id)
            .values(revoked_at=datetime.now(timezone.utc), revoke_reason="rotated")
            .execution_options(synchronize_session=False)
        )
        assert row.revoked_at is None

        with pytest.raises(RefreshError) as exc:
            await rotate_refresh(db, session.refresh_token)
        assert exc.value.reason == "reused"

        jtis = (await db.execute(select(RefreshToken.jti))).scalars().all()
        assert jtis == [session.jti]


# =============================================================================
# Logout and session
# =============================================================================

class TestLogoutAndSession:

    async def test_logout_revokes_cookie_session(self, client, db):
        cookie = (await register(client)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()

        resp = await client.post(f"{API}/logout", headers=cookie_header(cookie))
        assert resp.status_code == 200
        assert resp.json() == {"mensaje": "Logout OK"}

        row = (await db.execute(select(RefreshToken))).scalar_one()
        assert row.revoke_reason == "logout"

        client.cookies.clear()
        resp = await client.post(f"{API}/refresh", headers=cookie_header(cookie))
        assert resp.status_code == 401

    async def test_logout_without_cookie_is_ok(self, client):
        resp = await client.post(f"{API}/logout")
        assert resp.status_code == 200

    async def test_session_reports_password(self, client, make_user):
        user = await make_user()
        resp = await client.get(f"{API}/session", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.json()["hasPassword"] is True
        assert resp.json()["usuario"]["_id"] == user.id

    async def test_session_requires_auth(self, client):
        resp = await client.get(f"{API}/session")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_cookie_only_client_is_authenticated(self, client):
        await register(client)
        resp = await client.get(f"{API}/session")
        assert resp.status_code == 200

    async def test_cookie_stops_authenticating_after_logout(self, client):
        cookie = (await register(client)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()
        assert (await client.get(f"{API}/session", headers=cookie_header(cookie))).status_code == 200

        await client.post(f"{API}/logout", headers=cookie_header(cookie))
        client.cookies.clear()
        resp = await client.get(f"{API}/session", headers=cookie_header(cookie))
        assert resp.status_code == 401

    async def test_cookie_stops_authenticating_after_remote_revoke(self, client, make_user):
        user = await make_user(correo="pepe@example.com")
        body = {"correo": "pepe@example.com", "contraseña": DEFAULT_PASSWORD}
        cookie = (await client.post(f"{API}/login", json=body)).cookies.get(settings.REFRESH_COOKIE_NAME)
        client.cookies.clear()
        jti = decode_refresh_token(cookie)["jti"]

        # Revoked from another device holding an access token
        resp = await client.delete(f"{API}/sessions/{jti}", headers=auth_headers(user))
        assert resp.json() == {"revoked": 1}

        resp = await client.get(f"{API}/session", headers=cookie_header(cookie))
        assert resp.status_code == 401


# =============================================================================
# Password whitespace
# =============================================================================

class TestPasswordWhitespace:

    async def test_registered_password_is_trimmed_like_login(self, client):
        resp = await register(client, password="  secreto1  ")
        assert resp.status_code == 201
        client.cookies.clear()

        for attempt in ("secreto1", "  secreto1  "):
            resp = await client.post(f"{API}/login", json={"correo": "ana@example.com", "contraseña": attempt})
            assert resp.status_code == 200

    async def test_whitespace_only_password_is_rejected(self, client):
        resp = await register(client, password="        ")
        assert resp.status_code == 400

    async def test_changed_password_is_trimmed(self, client, make_user):
        user = await make_user(correo="pepe@example.com")
        resp = await client.post(
            f"{API}/me/password",
            json={"actual": f" {DEFAULT_PASSWORD} ", "nueva": " NuevaClave9 ", "confirm": "NuevaClave9"},
            headers=auth_headers(user),
        )
        assert resp.json()["ok"] is True

        resp = await client.post(f"{API}/login", json={"correo": "pepe@example.com", "contraseña": "NuevaClave9"})
        assert resp.status_code == 200


# =============================================================================
# Google sign in
# =============================================================================

class TestGoogle:

    CLAIMS = {"email": "gina@example.com", "name": "Gina", "email_verified": "true"}

    async def test_new_user_without_profile(self, client):
        with patch("marketplace.auth.routes.verify_google_credential", AsyncMock(return_value=self.CLAIMS)):
            resp = await client.post(f"{API}/google", json={"credential": "x"})
        assert resp.status_code == 200
        assert resp.json() == {"requiresProfile": True, "correo": "gina@example.com", "nombre": "Gina"}

    async def test_new_user_with_profile(self, client):
        with patch("marketplace.auth.routes.verify_google_credential", AsyncMock(return_value=self.CLAIMS)):
            resp = await client.post(f"{API}/google", json={"credential": "x", "tipo": "comerciante"})
        assert resp.status_code == 200
        usuario = resp.json()["usuario"]
        assert usuario["autenticadoPorGoogle"] is True
        assert usuario["emailVerificado"] is True
        assert usuario["tipo"] == "comerciante"

    async def test_existing_user_is_linked(self, client, make_user, db):
        user = await make_user(correo="gina@example.com")
        with patch("marketplace.auth.routes.verify_google_credential", AsyncMock(return_value=self.CLAIMS)):
            resp = await client.post(f"{API}/google", json={"credential": "x"})
        assert resp.status_code == 200
        await db.refresh(user)
        assert user.autenticado_por_google is True

    async def test_invalid_credential_is_401(self, client):
        with patch(VERIFY_TOKEN, side_effect=ValueError("Token expired")):
            resp = await client.post(f"{API}/google", json={"credential": "a.b.c"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "CREDENTIAL_INVALID_OR_EXPIRED"


VERIFY_TOKEN = "marketplace.auth.google.google_id_token.verify_oauth2_token"
CREDENTIAL = "header.payload.signature"


class TestVerifyGoogleCredential:

    CLAIMS = {"aud": "client-1", "email": " Gina@Example.com ", "email_verified": True}

    async def test_valid_token(self):
        with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS)) as verify:
            claims = await verify_google_credential(CREDENTIAL, audiences=["client-1"])
        assert claims["email"] == "gina@example.com"
        assert verify.call_args.args[0] == CREDENTIAL

    async def test_missing_and_malformed(self):
        with pytest.raises(BadRequestError):
            await verify_google_credential("  ")
        with pytest.raises(UnauthorizedError) as exc:
            await verify_google_credential("not-a-jwt")
        assert exc.value.message == "CREDENTIAL_MALFORMED"

    async def test_transport_failure_is_401(self):
        with patch(VERIFY_TOKEN, side_effect=google_auth_exceptions.TransportError("no certs")):
            with pytest.raises(UnauthorizedError):
                await verify_google_credential(CREDENTIAL, audiences=["client-1"])

    async def test_foreign_audience(self):
        with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS, aud="someone-else")):
            with pytest.raises(BadRequestError) as exc:
                await verify_google_credential(CREDENTIAL, audiences=["client-1"])
        assert "audience" in exc.value.message

    async def test_no_configured_audience_accepts_any(self):
        with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS, aud="someone-else")):
            assert (await verify_google_credential(CREDENTIAL, audiences=[]))["aud"] == "someone-else"

    async def test_unverified_email(self):
        for flag in (False, "false", None):
            with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS, email_verified=flag)):
                with pytest.raises(BadRequestError):
                    await verify_google_credential(CREDENTIAL, audiences=["client-1"])

    async def test_string_flag_is_accepted(self):
        with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS, email_verified="true")):
            assert await verify_google_credential(CREDENTIAL, audiences=["client-1"])

    async def test_missing_email(self):
        with patch(VERIFY_TOKEN, return_value=dict(self.CLAIMS, email="")):
            with pytest.raises(BadRequestError):
                await verify_google_credential(CREDENTIAL, audiences=["client-1"])


# =============================================================================
# User search
# =============================================================================

class TestSearch:

    async def test_prefix_search(self, client, make_user):
        juan = await make_user(nickname="juanito", nombre="Juan")
        await make_user(nickname="pedro", nombre="Pedro")
        resp = await client.get(f"{API}/search", params={"q": "JUA"})
        assert resp.status_code == 200
        assert [u["_id"] for u in resp.json()] == [juan.id]

    async def test_exclude_and_empty(self, client, make_user):
        juan = await make_user(nickname="juanito")
        resp = await client.get(f"{API}/search", params={"q": "juan", "exclude": juan.id})
        assert resp.json() == []
        assert (await client.get(f"{API}/search", params={"q": " "})).json() == []

    async def test_wildcards_are_literal(self, client, make_user):
        await make_user(nickname="juanito")
        resp = await client.get(f"{API}/search", params={"q": "%"})
        assert resp.json() == []
