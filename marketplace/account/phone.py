"""
Phone number verification by one-time code.

Codes are sent by WhatsApp (default), SMS or a voice call and only their
sha256 is stored. A new code cannot be requested for the same number
until the resend cooldown has passed.
"""
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.utils import hash_token
from marketplace.config import settings
from marketplace.errors import (
    BadRequestError,
    GoneError,
    NotFoundError,
    TooManyRequestsError,
    UnauthorizedError,
)
from marketplace.models import PhoneOTP, User, as_utc
from marketplace.notifications.sms_provider import PhoneMessage, get_phone_provider

logger = logging.getLogger(__name__)

CHANNELS = ("sms", "whatsapp", "voz")

_NON_DIGITS = re.compile(r"\D+")
_MX_WITH_52 = re.compile(r"^\+52\d{10}$")
_MX_WITH_521 = re.compile(r"^\+?521\d{10}$")


def pick_channel(value: Optional[str]) -> str:
    channel = (value or "whatsapp").strip().lower()
    return channel if channel in CHANNELS else "whatsapp"


def normalize_phone(raw: Optional[str], channel: str = "whatsapp", country: Optional[str] = None) -> str:
    """
    Normalize a phone number to E.164 for the given channel.

    Mexican WhatsApp numbers always become +521 plus ten digits; Mexican
    SMS and voice numbers of ten digits get +52. Other 11-15 digit
    numbers just get a leading +.
    """
    country = (country or settings.PHONE_DEFAULT_COUNTRY).upper()
    value = str(raw or "").strip()
    if not value:
        return ""
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]
    digits = _NON_DIGITS.sub("", value)

    if country == "MX" and channel == "whatsapp":
        if _MX_WITH_52.match(value):
            return f"+521{digits[-10:]}"
        if len(digits) == 10:
            return f"+521{digits}"
        if _MX_WITH_521.match(value):
            return f"+521{digits[-10:]}"

    if value.startswith("+"):
        return value
    if country == "MX" and channel != "whatsapp" and len(digits) == 10:
        return f"+52{digits}"
    if 11 <= len(digits) <= 15:
        return f"+{digits}"
    return value


def generate_otp(length: Optional[int] = None) -> str:
    length = length or settings.PHONE_OTP_LEN
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


async def _latest_otp(db: AsyncSession, user_id: str, telefono: str) -> Optional[PhoneOTP]:
    result = await db.execute(
        select(PhoneOTP)
        .where(PhoneOTP.user_id == user_id, PhoneOTP.telefono == telefono)
        .order_by(PhoneOTP.sent_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def send_code(db: AsyncSession, user: User, raw_phone: str, raw_channel: Optional[str]) -> dict:
    """Create and deliver a code. Provider failures are logged, not raised."""
    channel = pick_channel(raw_channel)
    telefono = normalize_phone(raw_phone, channel)
    if not telefono:
        raise BadRequestError("Phone number is required")

    now = datetime.now(timezone.utc)
    cooldown = settings.PHONE_RESEND_COOLDOWN_SEC
    last = await _latest_otp(db, user.id, telefono)
    if last is not None:
        elapsed = (now - as_utc(last.sent_at)).total_seconds()
        if elapsed < cooldown:
            wait = int(cooldown - elapsed) + 1
            raise TooManyRequestsError(f"Wait {wait}s before requesting another code", details={"retryAfter": wait})

    code = generate_otp()
    db.add(PhoneOTP(
        user_id=user.id,
        telefono=telefono,
        channel=channel,
        code_hash=hash_token(code),
        sent_at=now,
        expires_at=now + timedelta(seconds=settings.PHONE_OTP_TTL_SEC),
    ))
    await db.commit()

    minutes = max(1, settings.PHONE_OTP_TTL_SEC // 60)
    body = f"Tu código de AnunciaYA es: {code}\nCaduca en {minutes} minutos."
    result = await get_phone_provider().send(PhoneMessage(to=telefono, body=body, channel=channel))
    if not result.success:
        logger.error(f"OTP delivery via {channel} failed for user {user.id}: {result.error}")

    payload = {"ok": True, "cooldown": cooldown, "ttl": settings.PHONE_OTP_TTL_SEC}
    if settings.PHONE_ECHO_OTP:
        payload["code"] = code
    return payload


async def verify_code(db: AsyncSession, user: User, raw_phone: str, raw_channel: Optional[str], codigo: str) -> User:
    """Check a code; on success the number becomes the user's verified phone."""
    channel = pick_channel(raw_channel)
    telefono = normalize_phone(raw_phone, channel)
    codigo = (codigo or "").strip()
    if not telefono or not codigo:
        raise BadRequestError("Phone number and code are required")

    otp = await _latest_otp(db, user.id, telefono)
    if otp is None:
        raise NotFoundError("No active code")
    if as_utc(otp.expires_at) < datetime.now(timezone.utc):
        raise GoneError("Code expired")
    if otp.attempts >= settings.PHONE_OTP_MAX_ATTEMPTS:
        raise TooManyRequestsError("Too many attempts, request a new code")

    otp.attempts += 1
    await db.commit()

    if hash_token(codigo) != otp.code_hash:
        logger.info(f"Wrong OTP for user {user.id} (attempt {otp.attempts})")
        raise UnauthorizedError("Incorrect code")

    user.telefono = telefono
    user.telefono_verificado = True
    user.telefono_verificado_at = datetime.now(timezone.utc)
    await db.execute(delete(PhoneOTP).where(PhoneOTP.user_id == user.id, PhoneOTP.telefono == telefono))
    await db.commit()
    await db.refresh(user)
    return user
