"""Account deletion and recovery of deleted accounts."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.utils import get_password_hash, hash_token, is_strong_password
from marketplace.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    TooManyRequestsError,
    UpstreamError,
)
from marketplace.models import DeletedAccount, PhoneOTP, RefreshToken, User, as_utc
from marketplace.notifications.email_provider import get_email_provider
from marketplace.notifications.templates import build_recovery_email
from marketplace.realtime.hub import manager

logger = logging.getLogger(__name__)

RECOVERY_CODE_TTL_MINUTES = 15
RECOVERY_MAX_TRIES = 5

SNAPSHOT_FIELDS = (
    "correo",
    "nombre",
    "tipo",
    "perfil",
    "nickname",
    "foto_perfil",
    "direccion",
    "telefono",
    "telefono_verificado",
    "email_verificado",
    "autenticado_por_google",
)


def snapshot_user(user: User) -> dict:
    datos = {field: getattr(user, field) for field in SNAPSHOT_FIELDS}
    created = as_utc(user.created_at)
    datos["created_at"] = created.isoformat() if created else None
    return datos


def restore_user(deleted: DeletedAccount, password: str) -> User:
    datos = dict(deleted.datos or {})
    created = datos.pop("created_at", None)
    user = User(
        id=deleted.original_id,
        hashed_password=get_password_hash(password),
        # Tokens minted before the deletion stay dead after the restore
        logout_at=datetime.now(timezone.utc),
        **{k: v for k, v in datos.items() if k in SNAPSHOT_FIELDS},
    )
    if created:
        user.created_at = datetime.fromisoformat(created)
    return user


async def delete_account(db: AsyncSession, user: User) -> DeletedAccount:
    """Snapshot the user, then delete it with its sessions and phone codes."""
    snapshot = DeletedAccount(
        original_id=user.id,
        correo=user.correo,
        datos=snapshot_user(user),
    )
    db.add(snapshot)
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
    await db.execute(delete(PhoneOTP).where(PhoneOTP.user_id == user.id))
    await db.delete(user)
    await db.commit()

    await manager.force_logout(snapshot.original_id, reason="account-deleted")
    logger.info(f"Account {snapshot.original_id} deleted")
    return snapshot


async def _latest_deleted(db: AsyncSession, correo: str) -> Optional[DeletedAccount]:
    result = await db.execute(
        select(DeletedAccount)
        .where(DeletedAccount.correo == correo)
        .order_by(DeletedAccount.deleted_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def send_recovery_code(db: AsyncSession, correo: str) -> None:
    correo = (correo or "").strip().lower()
    if not correo:
        raise BadRequestError("Email is required")

    deleted = await _latest_deleted(db, correo)
    if deleted is None:
        raise NotFoundError("No deleted account found for that email")

    code = f"{secrets.randbelow(900000) + 100000}"
    deleted.recovery_code_hash = hash_token(code)
    deleted.recovery_code_expires = datetime.now(timezone.utc) + timedelta(minutes=RECOVERY_CODE_TTL_MINUTES)
    deleted.recovery_code_tries = 0
    await db.commit()

    result = await get_email_provider().send(build_recovery_email(correo, code, RECOVERY_CODE_TTL_MINUTES))
    if not result.success:
        logger.error(f"Recovery email for {deleted.original_id} failed: {result.error}")
        raise UpstreamError("Could not send the recovery email")


async def recover_account(db: AsyncSession, correo: str, codigo: str, password: str) -> User:
    """Check the recovery code and recreate the account with a new password."""
    correo = (correo or "").strip().lower()
    codigo = (codigo or "").strip()
    password = (password or "").strip()
    if not correo or not codigo or not password:
        raise BadRequestError("Missing data")
    if not is_strong_password(password):
        raise BadRequestError(
            "Weak password. Use at least 8 characters with uppercase, lowercase and a number."
        )

    deleted = await _latest_deleted(db, correo)
    if deleted is None or not deleted.recovery_code_hash or not deleted.recovery_code_expires:
        raise NotFoundError("No account pending recovery")
    if deleted.recovery_code_tries >= RECOVERY_MAX_TRIES:
        raise TooManyRequestsError("Too many attempts, request a new code")

    if hash_token(codigo) != deleted.recovery_code_hash:
        deleted.recovery_code_tries += 1
        await db.commit()
        raise BadRequestError("Incorrect code")
    if as_utc(deleted.recovery_code_expires) < datetime.now(timezone.utc):
        raise BadRequestError("The code has expired")

    existing = await db.execute(select(User.id).where(User.correo == correo))
    if existing.scalar_one_or_none():
        raise ConflictError("An active account already uses this email")

    user = restore_user(deleted, password)
    db.add(user)
    await db.delete(deleted)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Account {user.id} recovered")
    return user
