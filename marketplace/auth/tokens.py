"""
Session issuance and refresh token rotation.

Every login starts a token *family*. Each refresh consumes the presented
refresh token (marks its row revoked) and issues a successor in the same
family. Presenting a token that was already consumed, or whose hash does
not match what we stored, means it leaked: the whole family is revoked.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.models import RefreshToken, User, as_utc
from marketplace.auth.utils import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_token,
    issued_before,
)

logger = logging.getLogger(__name__)

REFRESH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


@dataclass
class IssuedSession:
    """Tokens handed to the client after login or refresh."""
    access_token: str
    refresh_token: str
    jti: str
    family: str
    expires_in: int
    issued_at: datetime


class RefreshError(Exception):
    """Refresh failed. ``reason`` is "invalid" or "reused"."""

    def __init__(self, reason: str, user_id: Optional[str] = None, family: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.user_id = user_id
        self.family = family


# =============================================================================
# Request metadata
# =============================================================================

def client_ip(request: Optional[Request]) -> str:
    if request is None:
        return ""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def user_agent(request: Optional[Request]) -> str:
    if request is None:
        return ""
    return (request.headers.get("user-agent") or "")[:512]


def is_https(request: Request) -> bool:
    proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    return proto == "https" or request.url.scheme == "https"


# =============================================================================
# Cookie helpers
# =============================================================================

def set_refresh_cookie(response: Response, request: Request, refresh_token: str) -> None:
    secure = is_https(request)
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=REFRESH_COOKIE_MAX_AGE,
        path="/",
        domain=settings.COOKIE_DOMAIN or None,
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )


def clear_refresh_cookie(response: Response, request: Request) -> None:
    secure = is_https(request)
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path="/",
        domain=settings.COOKIE_DOMAIN or None,
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )


def get_refresh_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(settings.REFRESH_COOKIE_NAME) or None


# =============================================================================
# Issue / rotate / revoke
# =============================================================================

async def _persist_refresh(
    db: AsyncSession,
    user_id: str,
    family: Optional[str],
    request: Optional[Request],
) -> tuple:
    token, jti, fam, expires_at = create_refresh_token(user_id, family)
    now = datetime.now(timezone.utc)
    db.add(RefreshToken(
        user_id=user_id,
        jti=jti,
        family=fam,
        token_hash=hash_token(token),
        expires_at=expires_at,
        ua=user_agent(request),
        ip=client_ip(request),
        last_used_at=now,
    ))
    return token, jti, fam


async def issue_session(db: AsyncSession, user: User, request: Optional[Request] = None) -> IssuedSession:
    """Start a new session (new family) for the user and commit it."""
    access = create_access_token(user.id)
    refresh, jti, family = await _persist_refresh(db, user.id, None, request)
    await db.commit()
    logger.info(f"Session issued for user {user.id} (family {family[:8]})")
    return IssuedSession(
        access_token=access,
        refresh_token=refresh,
        jti=jti,
        family=family,
        expires_in=settings.access_ttl_seconds,
        issued_at=datetime.now(timezone.utc),
    )


async def revoke_family(db: AsyncSession, family: str, reason: str = "revoked") -> int:
    """Revoke every live token of a family. Returns the number revoked."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.family == family, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc), revoke_reason=reason)
    )
    return result.rowcount or 0


async def rotate_refresh(db: AsyncSession, raw_refresh: str, request: Optional[Request] = None) -> IssuedSession:
    """
    Consume a refresh token and issue its successor.

    Raises RefreshError("invalid") for tokens that fail verification and
    RefreshError("reused") when reuse is detected (family revoked).
    """
    payload = decode_refresh_token(raw_refresh)
    if not payload:
        raise RefreshError("invalid")

    uid, jti, family = payload["uid"], payload["jti"], payload["fam"]
    incoming_hash = hash_token(raw_refresh)

    # Deleted accounts and tokens older than the last logout-everywhere
    # (which includes restoring a deleted account) never refresh.
    user = await db.get(User, uid)
    if user is None or issued_before(payload, user.logout_at):
        raise RefreshError("invalid", user_id=uid, family=family)

    result = await db.execute(
        select(RefreshToken).where(RefreshToken.jti == jti, RefreshToken.user_id == uid)
    )
    row = result.scalar_one_or_none()

    if row is None:
        # Signed token we never stored (issued before persistence existed): adopt it
        row = RefreshToken(
            user_id=uid,
            jti=jti,
            family=family,
            token_hash=incoming_hash,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            ua=user_agent(request),
            ip=client_ip(request),
        )
        db.add(row)
        await db.flush()

    if row.revoked_at is not None or row.token_hash != incoming_hash:
        revoked = await revoke_family(db, row.family, reason="reuse")
        await db.commit()
        logger.warning(
            f"Refresh token reuse detected for user {uid}; revoked {revoked} token(s) in family {row.family[:8]}"
        )
        raise RefreshError("reused", user_id=uid, family=row.family)

    now = datetime.now(timezone.utc)
    if as_utc(row.expires_at) <= now:
        raise RefreshError("invalid")

    # Only one concurrent refresh can consume the row; the loser is a replay.
    consumed = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == row.id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=now, revoke_reason="rotated", last_used_at=now)
        .execution_options(synchronize_session=False)
    )
    if not consumed.rowcount:
        revoked = await revoke_family(db, row.family, reason="reuse")
        await db.commit()
        logger.warning(
            f"Concurrent refresh of a consumed token for user {uid}; revoked {revoked} token(s) "
            f"in family {row.family[:8]}"
        )
        raise RefreshError("reused", user_id=uid, family=row.family)

    access = create_access_token(uid)
    refresh, new_jti, _ = await _persist_refresh(db, uid, row.family, request)
    await db.commit()

    return IssuedSession(
        access_token=access,
        refresh_token=refresh,
        jti=new_jti,
        family=row.family,
        expires_in=settings.access_ttl_seconds,
        issued_at=now,
    )


async def live_refresh_payload(db: AsyncSession, raw_refresh: Optional[str]) -> Optional[dict]:
    """
    Decoded refresh token, but only while its stored row is still live.

    A signature check alone would keep authenticating a cookie after
    logout or a remote session revoke.
    """
    payload = decode_refresh_token(raw_refresh) if raw_refresh else None
    if not payload:
        return None
    result = await db.execute(
        select(RefreshToken.revoked_at, RefreshToken.expires_at).where(
            RefreshToken.jti == payload["jti"],
            RefreshToken.user_id == payload["uid"],
        )
    )
    row = result.first()
    if row is None or row.revoked_at is not None:
        return None
    if as_utc(row.expires_at) <= datetime.now(timezone.utc):
        return None
    return payload


async def touch_session(db: AsyncSession, raw_refresh: Optional[str], request: Request) -> Optional[dict]:
    """Refresh ua/ip/last_used_at of the cookie's session. Returns the payload."""
    payload = decode_refresh_token(raw_refresh) if raw_refresh else None
    if not payload:
        return None
    result = await db.execute(
        select(RefreshToken).where(
            RefreshToken.jti == payload["jti"],
            RefreshToken.user_id == payload["uid"],
        )
    )
    row = result.scalar_one_or_none()
    if row is not None and row.revoked_at is None:
        row.ua = user_agent(request) or row.ua
        row.ip = client_ip(request) or row.ip
        row.last_used_at = datetime.now(timezone.utc)
        await db.commit()
    return payload


async def revoke_session_by_cookie(db: AsyncSession, raw_refresh: Optional[str], reason: str = "logout") -> bool:
    """Revoke the row behind a refresh cookie (logout)."""
    payload = decode_refresh_token(raw_refresh) if raw_refresh else None
    if not payload:
        return False
    result = await db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.jti == payload["jti"],
            RefreshToken.user_id == payload["uid"],
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now(timezone.utc), revoke_reason=reason)
    )
    await db.commit()
    return bool(result.rowcount)


def session_response(
    request: Request,
    session: IssuedSession,
    body: Optional[dict] = None,
    status_code: int = 200,
) -> JSONResponse:
    """JSON body with the access token, plus the refresh cookie."""
    content = {
        **(body or {}),
        "token": session.access_token,
        "expiresIn": session.expires_in,
        "issuedAt": int(session.issued_at.timestamp() * 1000),
    }
    response = JSONResponse(status_code=status_code, content=content)
    set_refresh_cookie(response, request, session.refresh_token)
    return response
