"""Tests for the TOTP second factor: pairing, login enforcement and removal."""
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pyotp
import pytest

from marketplace.auth import two_factor
from marketplace.errors import BadRequestError, UnauthorizedError
from marketplace.models import User

from tests.helpers import DEFAULT_PASSWORD, auth_headers

API = "/api/usuarios"


def stale_code(secret: str) -> str:
    """A well-formed code from an hour ago, outside every accepted window."""
    return pyotp.TOTP(secret).at(time.time() - 3600)


@pytest.fixture
async def protected_user(make_user):
    secret = pyotp.random_base32()
    return await make_user(
        correo="dora@example.com",
        two_factor_secret=secret,
        two_factor_enabled=True,
        two_factor_confirmed=True,
    )


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:

    def test_provisioning_uri_names_issuer_and_account(self):
        uri = two_factor.provisioning_uri("JBSWY3DPEHPK3PXP", "dora@example.com")
        assert uri.startswith("otpauth://totp/")
        assert "issuer=AnunciaYA" in uri
        assert "dora%40example.com" in uri

    def test_qr_is_png_data_uri(self):
        assert two_factor.qr_data_uri("otpauth://totp/x?secret=JBSWY3DPEHPK3PXP").startswith(
            "data:image/png;base64,"
        )

    def test_verify_code_accepts_spaces(self):
        secret = pyotp.random_base32()
        code = pyotp.TOTP(secret).now()
        assert two_factor.verify_code(secret, f"{code[:3]} {code[3:]}")

    def test_verify_code_rejects_garbage(self):
        secret = pyotp.random_base32()
        assert not two_factor.verify_code(secret, "abcdef")
        assert not two_factor.verify_code(secret, "")
        assert not two_factor.verify_code(None, "123456")
        assert not two_factor.verify_code(secret, stale_code(secret))

    def test_requires_code_only_when_confirmed(self):
        user = User(two_factor_secret="S", two_factor_enabled=True, two_factor_confirmed=False)
        assert not two_factor.requires_code(user)
        user.two_factor_confirmed = True
        assert two_factor.requires_code(user)

    def test_header_wins_over_body(self):
        request = MagicMock()
        request.headers = {"x-2fa-code": " 123 456 "}
        assert two_factor.code_from_request(request, "999999") == "123456"
        request.headers = {}
        assert two_factor.code_from_request(request, 999999) == "999999"

    def test_enforce_missing_and_invalid(self):
        secret = pyotp.random_base32()
        user = User(id="u1", correo="a@example.com", two_factor_secret=secret,
                    two_factor_enabled=True, two_factor_confirmed=True)
        with pytest.raises(UnauthorizedError) as missing:
            two_factor.enforce_second_factor(user, "")
        assert missing.value.code == "TWO_FACTOR_REQUIRED"
        assert missing.value.details["requiere2FA"] is True
        with pytest.raises(BadRequestError) as invalid:
            two_factor.enforce_second_factor(user, stale_code(secret))
        assert invalid.value.code == "TWO_FACTOR_INVALID"
        two_factor.enforce_second_factor(user, pyotp.TOTP(secret).now())


# =============================================================================
# Pairing
# =============================================================================

class TestSetup:

    async def test_setup_then_confirm_enables(self, client, make_user, db):
        user = await make_user()
        resp = await client.post(f"{API}/2fa/setup", headers=auth_headers(user))
        assert resp.status_code == 200
        body = resp.json()
        assert body["otpauth"].startswith("otpauth://totp/")
        assert body["qr"].startswith("data:image/png;base64,")

        await db.refresh(user)
        assert user.two_factor_secret
        assert user.two_factor_enabled is False

        code = pyotp.TOTP(user.two_factor_secret).now()
        resp = await client.post(f"{API}/2fa/verificar", json={"codigo": code}, headers=auth_headers(user))
        assert resp.json() == {"mensaje": "2FA activado con éxito"}

        await db.refresh(user)
        assert user.two_factor_enabled is True
        assert user.two_factor_confirmed is True
        session = (await client.get(f"{API}/session", headers=auth_headers(user))).json()
        assert session["usuario"]["twoFactorEnabled"] is True

    async def test_setup_when_active_conflicts(self, client, protected_user):
        resp = await client.post(f"{API}/2fa/setup", headers=auth_headers(protected_user))
        assert resp.status_code == 409

    async def test_confirm_without_setup(self, client, make_user):
        user = await make_user()
        resp = await client.post(f"{API}/2fa/verificar", json={"codigo": "123456"}, headers=auth_headers(user))
        assert resp.status_code == 400

    async def test_confirm_without_code(self, client, make_user):
        user = await make_user()
        resp = await client.post(f"{API}/2fa/verificar", json={}, headers=auth_headers(user))
        assert resp.status_code == 400

    async def test_confirm_with_wrong_code(self, client, make_user, db):
        user = await make_user()
        await client.post(f"{API}/2fa/setup", headers=auth_headers(user))
        await db.refresh(user)
        resp = await client.post(
            f"{API}/2fa/verificar",
            json={"codigo": stale_code(user.two_factor_secret)},
            headers=auth_headers(user),
        )
        assert resp.status_code == 401
        await db.refresh(user)
        assert user.two_factor_enabled is False


class TestDisable:

    async def test_active_factor_needs_code(self, client, protected_user, db):
        resp = await client.post(f"{API}/2fa/desactivar", json={}, headers=auth_headers(protected_user))
        assert resp.status_code == 401

        code = pyotp.TOTP(protected_user.two_factor_secret).now()
        resp = await client.post(f"{API}/2fa/desactivar", json={"codigo": code}, headers=auth_headers(protected_user))
        assert resp.json() == {"mensaje": "2FA desactivado"}

        await db.refresh(protected_user)
        assert protected_user.two_factor_secret is None
        assert protected_user.two_factor_enabled is False

    async def test_pending_setup_is_discarded_without_code(self, client, make_user, db):
        user = await make_user(two_factor_secret=pyotp.random_base32())
        resp = await client.post(f"{API}/2fa/desactivar", headers=auth_headers(user))
        assert resp.status_code == 200
        await db.refresh(user)
        assert user.two_factor_secret is None


# =============================================================================
# Login enforcement
# =============================================================================

class TestLogin:

    BODY = {"correo": "dora@example.com", "contraseña": DEFAULT_PASSWORD}

    async def test_missing_code_asks_for_it(self, client, protected_user):
        resp = await client.post(f"{API}/login", json=self.BODY)
        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["code"] == "TWO_FACTOR_REQUIRED"
        assert error["details"]["requiere2FA"] is True
        assert error["details"]["usuario"]["_id"] == protected_user.id

    async def test_wrong_code(self, client, protected_user):
        body = {**self.BODY, "codigo2FA": stale_code(protected_user.two_factor_secret)}
        resp = await client.post(f"{API}/login", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "TWO_FACTOR_INVALID"

    async def test_code_in_body(self, client, protected_user):
        body = {**self.BODY, "otp": pyotp.TOTP(protected_user.two_factor_secret).now()}
        resp = await client.post(f"{API}/login", json=body)
        assert resp.status_code == 200

    async def test_code_in_header(self, client, protected_user):
        code = pyotp.TOTP(protected_user.two_factor_secret).now()
        resp = await client.post(f"{API}/login", json=self.BODY, headers={"X-2FA-Code": code})
        assert resp.status_code == 200

    async def test_wrong_password_is_checked_first(self, client, protected_user):
        resp = await client.post(f"{API}/login", json={**self.BODY, "contraseña": "mala"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_unconfirmed_factor_is_not_enforced(self, client, make_user):
        await make_user(correo="eva@example.com", two_factor_secret=pyotp.random_base32(), two_factor_enabled=True)
        resp = await client.post(f"{API}/login", json={"correo": "eva@example.com", "contraseña": DEFAULT_PASSWORD})
        assert resp.status_code == 200


class TestGoogleLogin:

    CLAIMS = {"email": "dora@example.com", "name": "Dora", "email_verified": True}

    async def test_google_sign_in_needs_code(self, client, protected_user):
        with patch("marketplace.auth.routes.verify_google_credential", AsyncMock(return_value=self.CLAIMS)):
            resp = await client.post(f"{API}/google", json={"credential": "x"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "TWO_FACTOR_REQUIRED"

    async def test_google_sign_in_with_code(self, client, protected_user):
        code = pyotp.TOTP(protected_user.two_factor_secret).now()
        with patch("marketplace.auth.routes.verify_google_credential", AsyncMock(return_value=self.CLAIMS)):
            resp = await client.post(f"{API}/google", json={"credential": "x", "totp": code})
        assert resp.status_code == 200
        assert resp.json()["usuario"]["twoFactorEnabled"] is True
