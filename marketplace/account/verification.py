"""Email address verification."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.utils import hash_token, random_hex
from marketplace.config import settings
from marketplace.errors import BadRequestError, UpstreamError
from marketplace.models import User
from marketplace.notifications.email_provider import get_email_provider
from marketplace.notifications.templates import build_verification_email

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 20


def verification_link(raw_token: str) -> str:
    base = settings.FRONTEND_URL.rstrip("/")
    return f"{base}/verificar-email?token={quote(raw_token)}"


async def send_verification_email(db: AsyncSession, user: User) -> None:
    """
    Store a fresh verification token and email its link.

    Only the sha256 of the token is persisted.

    Raises:
        UpstreamError: if the email provider fails
    """
    raw = random_hex(32)
    user.email_verif_token_hash = hash_token(raw)
    user.email_verif_expires = datetime.now(timezone.utc) + timedelta(hours=settings.EMAIL_VERIFY_TTL_HOURS)
    user.email_verificado = False
    await db.commit()

    message = build_verification_email(
        to=user.correo,
        nombre=user.nombre,
        link=verification_link(raw),
        ttl_hours=settings.EMAIL_VERIFY_TTL_HOURS,
    )
    result = await get_email_provider().send(message)
    if not result.success:
        logger.error(f"Verification email to user {user.id} failed: {result.error}")
        raise UpstreamError("Could not send the verification email", details={"provider": result.error})
    logger.info(f"Verification email sent to user {user.id}")


async def confirm_email(db: AsyncSession, raw_token: Optional[str]) -> User:
    """Mark the owner of an unexpired token as verified."""
    raw_token = (raw_token or "").strip()
    if len(raw_token) < MIN_TOKEN_LENGTH:
        raise BadRequestError("Missing or invalid token")

    result = await db.execute(
        select(User).where(
            User.email_verif_token_hash == hash_token(raw_token),
            User.email_verif_expires > datetime.now(timezone.utc),
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise BadRequestError("Invalid or expired token")

    user.email_verificado = True
    user.email_verif_token_hash = None
    user.email_verif_expires = None
    await db.commit()
    await db.refresh(user)
    return user
