"""Device session listing and revocation."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models import RefreshToken, User, as_utc
from marketplace.realtime.hub import manager

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_session(row: RefreshToken, current_jti: Optional[str]) -> dict:
    return {
        "id": row.jti,
        "jti": row.jti,
        "family": row.family,
        "current": bool(current_jti) and row.jti == current_jti,
        "revokedAt": _iso(row.revoked_at),
        "lastUsedAt": _iso(row.last_used_at),
        "ip": row.ip or None,
        "ua": row.ua or None,
        "createdAt": _iso(row.created_at),
        "updatedAt": _iso(row.updated_at),
        "expiresAt": _iso(row.expires_at),
    }


async def list_active_sessions(db: AsyncSession, user_id: str) -> List[RefreshToken]:
    """Live (not revoked, not expired) sessions, most recently used first."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .order_by(RefreshToken.last_used_at.desc(), RefreshToken.created_at.desc())
    )
    return list(result.scalars().all())


async def _live_rows(db: AsyncSession, user_id: str, except_jti: Optional[str] = None) -> List[RefreshToken]:
    query = select(RefreshToken).where(
        RefreshToken.user_id == user_id,
        RefreshToken.revoked_at.is_(None),
    )
    if except_jti:
        query = query.where(RefreshToken.jti != except_jti)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _mark_revoked(db: AsyncSession, rows: List[RefreshToken], reason: str) -> None:
    if not rows:
        return
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.id.in_([r.id for r in rows]))
        .values(revoked_at=datetime.now(timezone.utc), revoke_reason=reason)
    )


async def notify_revoked(user_id: str, rows: List[RefreshToken], reason: str) -> None:
    for row in rows:
        await manager.force_logout(user_id, fam=row.family, jti=row.jti, reason=reason)


async def revoke_one(db: AsyncSession, user_id: str, jti: str) -> int:
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.user_id == user_id, RefreshToken.jti == jti)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return 0

    revoked = 0
    if row.revoked_at is None:
        await _mark_revoked(db, [row], "revoked")
        revoked = 1
    await db.commit()
    await notify_revoked(user_id, [row], "revoked")
    return revoked


async def revoke_others(db: AsyncSession, user_id: str, current_jti: Optional[str], reason: str = "revoked-others") -> int:
    """Revoke every session but the caller's own."""
    rows = await _live_rows(db, user_id, except_jti=current_jti)
    await _mark_revoked(db, rows, reason)
    await db.commit()
    await notify_revoked(user_id, rows, reason)
    if rows:
        logger.info(f"Revoked {len(rows)} other session(s) of user {user_id} ({reason})")
    return len(rows)


async def revoke_all(db: AsyncSession, user: User) -> int:
    """Revoke every session and invalidate all outstanding access tokens."""
    rows = await _live_rows(db, user.id)
    await _mark_revoked(db, rows, "revoked-all")
    user.logout_at = datetime.now(timezone.utc)
    await db.commit()

    await manager.force_logout(user.id, reason="revoked-all")
    await notify_revoked(user.id, rows, "revoked-all")
    logger.info(f"Revoked all {len(rows)} session(s) of user {user.id}")
    return len(rows)
