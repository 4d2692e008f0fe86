"""
TOTP second factor (authenticator apps).

Setup stores a fresh base32 secret, unconfirmed. The factor only becomes
active once the user proves the app was paired by sending a valid code.
Login and Google sign-in then require a current code from that app.
"""
import base64
import io
import logging
import re
from typing import Any, Optional

import pyotp
import qrcode
from fastapi import Request

from marketplace.errors import BadRequestError, UnauthorizedError
from marketplace.models import User

logger = logging.getLogger(__name__)

ISSUER = "AnunciaYA"
# Steps of 30s accepted on either side of now
SETUP_WINDOW = 1
LOGIN_WINDOW = 2

CODE_HEADERS = ("x-2fa-code", "x-two-factor-code")
WHITESPACE_RE = re.compile(r"\s+")


def new_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, account: str) -> str:
    """otpauth:// URI that authenticator apps import."""
    return pyotp.TOTP(secret).provisioning_uri(name=account, issuer_name=ISSUER)


def qr_data_uri(payload: str) -> str:
    """PNG QR code of ``payload`` as a data URI."""
    qr = qrcode.QRCode(border=1, box_size=6)
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def normalize_code(value: Any) -> str:
    return WHITESPACE_RE.sub("", str(value if value is not None else ""))


def verify_code(secret: Optional[str], code: Any, window: int = LOGIN_WINDOW) -> bool:
    code = normalize_code(code)
    if not secret or not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=window)


def requires_code(user: User) -> bool:
    return bool(user.two_factor_enabled and user.two_factor_confirmed and user.two_factor_secret)


def code_from_request(request: Request, body_code: Any = None) -> str:
    """The code from the dedicated headers, falling back to the body field."""
    for header in CODE_HEADERS:
        value = request.headers.get(header)
        if value:
            return normalize_code(value)
    return normalize_code(body_code)


def enforce_second_factor(user: User, code: str) -> None:
    """
    Raise unless ``code`` satisfies the user's second factor.

    Missing code is 401 so the client knows to prompt; a wrong or
    expired one is 400. Both carry ``requiere2FA``.
    """
    if not requires_code(user):
        return
    if not code:
        raise UnauthorizedError(
            "Two-factor code required",
            code="TWO_FACTOR_REQUIRED",
            details={"requiere2FA": True, "usuario": {"_id": user.id, "correo": user.correo}},
        )
    if not verify_code(user.two_factor_secret, code, LOGIN_WINDOW):
        logger.info(f"Rejected two-factor code for user {user.id}")
        raise BadRequestError(
            "Invalid or expired two-factor code",
            code="TWO_FACTOR_INVALID",
            details={"requiere2FA": True},
        )
