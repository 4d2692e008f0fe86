"""FastAPI dependencies for authentication."""
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from marketplace.database import get_db
from marketplace.models import User
from marketplace.auth.utils import (
    decode_access_token,
    decode_refresh_token,
    issued_before,
    parse_auth_header,
)
from marketplace.auth.tokens import get_refresh_cookie, live_refresh_payload

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def resolve_token_payload(request: Request, db: AsyncSession) -> Optional[dict]:
    """
    Decode the caller's credentials.

    The Authorization header (access token) wins; the refresh cookie is
    the fallback so that cookie-only clients still authenticate, as long
    as its session row has not been revoked.
    """
    header_token = parse_auth_header(request.headers.get("authorization"))
    if header_token:
        payload = decode_access_token(header_token)
        if payload and payload.get("uid"):
            return payload

    cookie_token = get_refresh_cookie(request)
    if cookie_token:
        return await live_refresh_payload(db, cookie_token)
    return None


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user.

    Raises 401 if not authenticated, the token is invalid, or the token
    predates the user's last "log out everywhere".
    """
    has_header = bool(request.headers.get("authorization"))
    has_cookie = bool(get_refresh_cookie(request))
    if not has_header and not has_cookie:
        raise _unauthorized("Not authenticated")

    payload = await resolve_token_payload(request, db)
    if not payload:
        raise _unauthorized("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == payload["uid"]))
    user = result.scalar_one_or_none()

    if not user:
        raise _unauthorized("User not found")

    if issued_before(payload, user.logout_at):
        raise _unauthorized("Session expired")

    request.state.token_payload = payload
    return user


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    Dependency to optionally get authenticated user.

    Returns None if not authenticated (doesn't raise).
    """
    try:
        return await get_current_user(request, credentials, db)
    except HTTPException:
        return None


def require_merchant(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency for merchant-only endpoints.

    Raises 403 unless the user is a merchant (tipo comerciante or a paid perfil).
    """
    if not current_user.is_merchant:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only merchants can perform this action",
        )
    return current_user


def current_refresh_payload(request: Request) -> Optional[dict]:
    """Decoded refresh cookie, identifying the caller's own device session."""
    return decode_refresh_token(get_refresh_cookie(request) or "")
