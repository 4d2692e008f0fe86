"""Account routes (mounted under /usuarios): profile, security, verification, recovery."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.account import phone, recovery, schemas
from marketplace.account.verification import confirm_email, send_verification_email
from marketplace.auth import two_factor
from marketplace.auth.dependencies import current_refresh_payload, get_current_user, get_optional_user
from marketplace.auth.schemas import TwoFactorCodeRequest, normalize_perfil, user_payload
from marketplace.auth.tokens import clear_refresh_cookie, issue_session, session_response
from marketplace.auth.utils import get_password_hash, is_strong_password, verify_password
from marketplace.config import settings
from marketplace.database import get_db
from marketplace.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    TooManyRequestsError,
    UnauthorizedError,
)
from marketplace.models import User, as_utc
from marketplace.sessions import service as sessions_service

logger = logging.getLogger(__name__)

router = APIRouter()

OAUTH_PROVIDERS = ("google",)


# =============================================================================
# Profile
# =============================================================================

@router.post("/seleccionar-perfil", status_code=201)
async def select_profile(
    data: schemas.SelectProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if data.perfil is None or str(data.perfil).strip() == "":
        raise BadRequestError("Profile not specified")
    current_user.perfil = normalize_perfil(data.perfil)
    await db.commit()
    return {"mensaje": "Perfil Actualizado", "perfil": current_user.perfil}


@router.patch("/me")
async def update_me(
    data: schemas.UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise BadRequestError("Nothing to update")

    for field, value in updates.items():
        setattr(current_user, field, value.strip() if isinstance(value, str) else value)
    await db.commit()
    await db.refresh(current_user)
    return {"mensaje": "Perfil actualizado", "usuario": user_payload(current_user)}


@router.patch("/me/nickname")
async def update_nickname(
    data: schemas.NicknameRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    nickname = data.nickname.strip()
    if not nickname:
        raise BadRequestError("Nickname is required")

    result = await db.execute(select(User.id).where(User.nickname == nickname))
    owner_id = result.scalar_one_or_none()
    if owner_id and owner_id != current_user.id:
        raise ConflictError("Nickname already in use")

    current_user.nickname = nickname
    await db.commit()
    await db.refresh(current_user)
    return {"mensaje": "Nickname actualizado", "usuario": user_payload(current_user)}


@router.get("/nickname/check")
async def check_nickname(
    nickname: str = Query(""),
    exclude: str = Query(""),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether a nickname is taken by someone other than ``exclude`` (default: the caller)."""
    nickname = nickname.strip()
    if not nickname:
        raise BadRequestError("Nickname is required")
    exclude = exclude or (current_user.id if current_user else "")

    result = await db.execute(select(User.id).where(User.nickname == nickname))
    owner_id = result.scalar_one_or_none()
    return {"exists": bool(owner_id) and owner_id != exclude, "userId": owner_id}


# =============================================================================
# Security
# =============================================================================

@router.post("/me/password")
async def change_password(
    request: Request,
    data: schemas.ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Change (or set, for Google-only accounts) the password.

    Wrong current passwords count toward the login lockout. On success
    every other session is revoked.
    """
    actual = (data.actual or "").strip()
    nueva = (data.nueva or "").strip()
    confirm = (data.confirm or "").strip()
    if not nueva:
        raise BadRequestError("New password is required")
    if confirm and nueva != confirm:
        raise BadRequestError("Confirmation does not match")
    if not is_strong_password(nueva):
        raise BadRequestError(
            "New password must have at least 8 characters, an uppercase letter, a lowercase letter and a number"
        )

    now = datetime.now(timezone.utc)
    lock_until = as_utc(current_user.lock_until)
    if lock_until and lock_until > now:
        minutes = max(1, int((lock_until - now).total_seconds() // 60) + 1)
        raise TooManyRequestsError(f"Too many attempts. Try again in {minutes} min")

    if current_user.hashed_password:
        if not actual:
            raise BadRequestError("Current password is required")
        if not verify_password(actual, current_user.hashed_password):
            failures = (current_user.failed_login_count or 0) + 1
            if failures >= settings.LOGIN_MAX_ATTEMPTS:
                current_user.failed_login_count = 0
                current_user.lock_until = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            else:
                current_user.failed_login_count = failures
            await db.commit()
            raise UnauthorizedError("Current password is incorrect")
        if actual == nueva:
            raise BadRequestError("New password cannot be the same as the current one")

    current_user.hashed_password = get_password_hash(nueva)
    current_user.failed_login_count = 0
    current_user.lock_until = None
    await db.commit()

    payload = current_refresh_payload(request)
    current_jti = payload.get("jti") if payload and payload.get("uid") == current_user.id else None
    revoked = await sessions_service.revoke_others(db, current_user.id, current_jti, reason="password_change")
    logger.info(f"Password changed for user {current_user.id}")
    return {"ok": True, "revoked": revoked}


@router.post("/2fa/setup")
async def two_factor_setup(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start pairing an authenticator app: new secret, unconfirmed, plus its QR."""
    if two_factor.requires_code(current_user):
        raise ConflictError("Two-factor authentication is already active")

    secret = two_factor.new_secret()
    current_user.two_factor_secret = secret
    current_user.two_factor_enabled = False
    current_user.two_factor_confirmed = False
    await db.commit()

    otpauth = two_factor.provisioning_uri(secret, current_user.correo)
    return {"otpauth": otpauth, "qr": two_factor.qr_data_uri(otpauth)}


@router.post("/2fa/verificar")
async def two_factor_confirm(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm pairing with a code from the app; this switches the factor on."""
    code = two_factor.normalize_code(data.codigo)
    if not code:
        raise BadRequestError("Code required")
    if not current_user.two_factor_secret:
        raise BadRequestError("Two-factor authentication is not set up")
    if not two_factor.verify_code(current_user.two_factor_secret, code, two_factor.SETUP_WINDOW):
        raise UnauthorizedError("Invalid code")

    current_user.two_factor_enabled = True
    current_user.two_factor_confirmed = True
    await db.commit()
    logger.info(f"Two-factor authentication enabled for user {current_user.id}")
    return {"mensaje": "2FA activado con éxito"}


@router.post("/2fa/desactivar")
async def two_factor_disable(
    data: Optional[TwoFactorCodeRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Switch the factor off. An active factor needs a current code to be removed."""
    if two_factor.requires_code(current_user):
        if not two_factor.verify_code(current_user.two_factor_secret, data.codigo if data else None):
            raise UnauthorizedError("Invalid code")

    current_user.two_factor_enabled = False
    current_user.two_factor_confirmed = False
    current_user.two_factor_secret = None
    await db.commit()
    logger.info(f"Two-factor authentication disabled for user {current_user.id}")
    return {"mensaje": "2FA desactivado"}


@router.get("/me/oauth")
async def oauth_connections(current_user: User = Depends(get_current_user)):
    return {"google": bool(current_user.autenticado_por_google)}


@router.delete("/me/oauth/{provider}")
async def unlink_oauth(
    provider: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    provider = provider.lower()
    if provider not in OAUTH_PROVIDERS:
        raise BadRequestError("Invalid provider")
    current_user.autenticado_por_google = False
    await db.commit()
    return {"ok": True, "google": False}


# =============================================================================
# Email verification
# =============================================================================

@router.post("/reenviar-verificacion")
async def resend_verification(
    data: schemas.ResendVerificationRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    user = None
    if data.user_id:
        user = await db.get(User, data.user_id)
    if user is None and data.correo:
        result = await db.execute(select(User).where(User.correo == data.correo.strip().lower()))
        user = result.scalar_one_or_none()
    if user is None:
        user = current_user
    if user is None:
        raise NotFoundError("User not found")

    if user.email_verificado:
        return {"mensaje": "Correo ya verificado"}

    await send_verification_email(db, user)
    return {"mensaje": "Correo de verificación enviado"}


@router.get("/verificar-email")
async def verify_email(token: str = Query(""), db: AsyncSession = Depends(get_db)):
    user = await confirm_email(db, token)
    return {"ok": True, "mensaje": "Correo verificado", "usuario": user_payload(user)}


# =============================================================================
# Phone verification
# =============================================================================

@router.post("/telefono/enviar-codigo")
async def send_phone_code(
    data: schemas.PhoneCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await phone.send_code(db, current_user, data.telefono, data.canal)


@router.post("/telefono/verificar-codigo")
async def verify_phone_code(
    data: schemas.PhoneVerifyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await phone.verify_code(db, current_user, data.telefono, data.canal, data.codigo)
    return {"ok": True, "usuario": user_payload(user)}


# =============================================================================
# Deletion and recovery
# =============================================================================

@router.delete("/me")
async def delete_me(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await recovery.delete_account(db, current_user)
    response = JSONResponse({"mensaje": "Cuenta eliminada"})
    clear_refresh_cookie(response, request)
    return response


@router.post("/recuperar/enviar-codigo")
async def send_recovery_code(data: schemas.RecoveryCodeRequest, db: AsyncSession = Depends(get_db)):
    await recovery.send_recovery_code(db, data.correo)
    return {"mensaje": "Código enviado al correo"}


@router.post("/recuperar/verificar-codigo")
async def verify_recovery_code(
    request: Request,
    data: schemas.RecoveryVerifyRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await recovery.recover_account(db, data.correo, data.codigo, data.password)
    session = await issue_session(db, user, request)
    return session_response(
        request,
        session,
        {"mensaje": "Cuenta recuperada con éxito", "usuario": user_payload(user)},
    )
