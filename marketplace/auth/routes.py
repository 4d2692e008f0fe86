"""Authentication routes (mounted under /usuarios)."""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import List

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.account.verification import send_verification_email
from marketplace.auth import schemas, two_factor
from marketplace.auth.dependencies import current_refresh_payload, get_current_user
from marketplace.auth.google import verify_google_credential
from marketplace.auth.tokens import (
    RefreshError,
    clear_refresh_cookie,
    get_refresh_cookie,
    issue_session,
    revoke_session_by_cookie,
    rotate_refresh,
    session_response,
)
from marketplace.auth.utils import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    get_password_hash,
    verify_password,
)
from marketplace.config import settings
from marketplace.database import get_db
from marketplace.errors import (
    AppError,
    BadRequestError,
    ConflictError,
    LockedError,
    NotFoundError,
    UnauthorizedError,
    error_body,
)
from marketplace.middleware.rate_limit import limiter
from marketplace.models import User, as_utc
from marketplace.realtime.hub import manager

logger = logging.getLogger(__name__)

router = APIRouter()

SEARCH_MAX_RESULTS = 20


def is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def default_nickname(correo: str) -> str:
    local = correo.split("@")[0] or "user"
    return f"{local}{int(time.time() * 1000)}"


async def find_by_email(db: AsyncSession, correo: str):
    result = await db.execute(select(User).where(func.lower(User.correo) == correo.lower()))
    return result.scalar_one_or_none()


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


@router.post("/registro", status_code=201)
@limiter.limit("20/minute")
async def register(request: Request, data: schemas.RegisterRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a new user with email and password.

    Sends the verification email (a failure there never fails the
    registration), starts a session and sets the refresh cookie.
    """
    correo = (data.correo or "").strip().lower()
    password = (data.password or "").strip()
    nombre = (data.nombre or "").strip()

    if not correo or not password or not nombre:
        raise BadRequestError("All fields are required")
    if not is_valid_email(correo):
        raise BadRequestError("Invalid email format")
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise BadRequestError(
            f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters"
        )

    existing = await find_by_email(db, correo)
    if existing:
        raise ConflictError(
            "An account with this email already exists",
            code="DUPLICATE",
            details={"tipoCoincide": existing.tipo},
        )

    user = User(
        correo=correo,
        nombre=nombre,
        hashed_password=get_password_hash(password),
        tipo=schemas.normalize_tipo(data.tipo),
        perfil=schemas.normalize_perfil(data.perfil),
        nickname=default_nickname(correo),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"User {user.id} registered ({user.tipo})")

    try:
        await send_verification_email(db, user)
    except AppError as e:
        logger.warning(f"Registration of {user.id} continues without verification email: {e.message}")

    session = await issue_session(db, user, request)
    return session_response(
        request,
        session,
        {"mensaje": "Registro Exitoso", "usuario": schemas.user_payload(user)},
        status_code=201,
    )


@router.post("/login")
@limiter.limit("5/minute")
async def login(request: Request, data: schemas.LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate with email (or nickname) and password.

    Every failed attempt counts toward the lockout; reaching the limit
    locks the account for LOGIN_LOCK_MINUTES.
    Accounts with a confirmed second factor also need a current
    authenticator code, from the body or the X-2FA-Code header.
    """
    login_value = (data.login or "").strip()
    password = (data.password or "").strip()
    if not login_value or not password:
        raise BadRequestError("Missing credentials")
    if "@" in login_value and not is_valid_email(login_value):
        raise BadRequestError("Invalid email format")

    user = await find_by_email(db, login_value)
    if user is None:
        result = await db.execute(select(User).where(User.nickname == login_value))
        user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("No account exists with this email. Sign up to continue.")

    now = datetime.now(timezone.utc)
    lock_until = as_utc(user.lock_until)
    if lock_until and lock_until > now:
        raise LockedError("Account temporarily locked", details={"lockedUntil": _iso(lock_until)})

    if not verify_password(password, user.hashed_password):
        max_attempts = settings.LOGIN_MAX_ATTEMPTS
        failures = (user.failed_login_count or 0) + 1
        if failures >= max_attempts:
            user.failed_login_count = 0
            user.lock_until = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            logger.warning(f"User {user.id} locked after {failures} failed logins")
        else:
            user.failed_login_count = failures
            user.lock_until = None
        await db.commit()
        raise UnauthorizedError(
            "Incorrect password",
            details={
                "remainingAttempts": max(0, max_attempts - failures),
                "lockedUntil": _iso(user.lock_until),
            },
        )

    if user.failed_login_count or user.lock_until:
        user.failed_login_count = 0
        user.lock_until = None
        await db.commit()

    two_factor.enforce_second_factor(user, two_factor.code_from_request(request, data.two_factor_code))

    session = await issue_session(db, user, request)
    await db.refresh(user)
    return session_response(request, session, {"usuario": schemas.user_payload(user)})


@router.post("/refresh")
async def refresh(request: Request, db: AsyncSession = Depends(get_db)):
    """Rotate the refresh cookie and return a new access token."""
    raw = get_refresh_cookie(request)
    if not raw:
        raise UnauthorizedError("No refresh token")

    try:
        session = await rotate_refresh(db, raw, request)
    except RefreshError as e:
        if e.reason == "reused" and e.user_id:
            await manager.force_logout(e.user_id, fam=e.family, reason="reuse")
        message = "Refresh token reused" if e.reason == "reused" else "Invalid refresh token"
        response = JSONResponse(
            status_code=401,
            content=error_body("UNAUTHORIZED", message, {"reason": e.reason}),
        )
        clear_refresh_cookie(response, request)
        return response

    return session_response(request, session)


@router.post("/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_db)):
    """Revoke this device's session and clear the cookie."""
    payload = current_refresh_payload(request)
    if payload and await revoke_session_by_cookie(db, get_refresh_cookie(request)):
        await manager.force_logout(payload["uid"], jti=payload["jti"], reason="logout")

    response = JSONResponse({"mensaje": "Logout OK"})
    clear_refresh_cookie(response, request)
    return response


@router.get("/session")
async def get_session(current_user: User = Depends(get_current_user)):
    """Current user, with whether a password is set (Google-only accounts have none)."""
    return {
        "usuario": schemas.user_payload(current_user),
        "hasPassword": bool(current_user.hashed_password),
    }


@router.post("/google")
@limiter.limit("10/minute")
async def google_login(request: Request, data: schemas.GoogleLoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Google One Tap sign in.

    Unknown emails need a ``tipo`` to be registered; without one the
    client is asked to pick a profile first.
    """
    claims = await verify_google_credential(data.credential)
    correo = claims["email"]
    nombre = (claims.get("name") or "").strip()

    user = await find_by_email(db, correo)
    if user is not None:
        if not user.autenticado_por_google or not user.email_verificado:
            user.autenticado_por_google = True
            user.email_verificado = True
            await db.commit()
    else:
        if not data.tipo:
            return {"requiresProfile": True, "correo": correo, "nombre": nombre}
        user = User(
            correo=correo,
            nombre=nombre or correo.split("@")[0],
            tipo=schemas.normalize_tipo(data.tipo),
            perfil=schemas.normalize_perfil(data.perfil),
            nickname=default_nickname(correo),
            autenticado_por_google=True,
            email_verificado=True,
        )
        db.add(user)
        await db.commit()
        logger.info(f"User {user.id} registered with Google")

    two_factor.enforce_second_factor(user, two_factor.code_from_request(request, data.two_factor_code))

    session = await issue_session(db, user, request)
    await db.refresh(user)
    return session_response(request, session, {"usuario": schemas.user_payload(user)})


@router.get("/search")
@limiter.limit("30/minute")
async def search_users(
    request: Request,
    q: str = Query("", max_length=100),
    exclude: str = Query(""),
    db: AsyncSession = Depends(get_db),
) -> List[dict]:
    """Users whose nickname, name or email starts with ``q``."""
    q = q.strip()
    if not q:
        return []

    escaped = q.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"{escaped}%"
    query = select(User).where(
        or_(
            func.lower(User.nickname).like(pattern, escape="\\"),
            func.lower(User.nombre).like(pattern, escape="\\"),
            func.lower(User.correo).like(pattern, escape="\\"),
        )
    )
    if exclude:
        query = query.where(User.id != exclude)
    result = await db.execute(query.order_by(User.nickname).limit(SEARCH_MAX_RESULTS))
    return [
        schemas.UserSearchResult.model_validate(u).model_dump(by_alias=True)
        for u in result.scalars().all()
    ]
