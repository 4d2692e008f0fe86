"""Device session routes (mounted under /usuarios)."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import current_refresh_payload, get_current_user
from marketplace.auth.tokens import clear_refresh_cookie, get_refresh_cookie, touch_session
from marketplace.database import get_db
from marketplace.models import User
from marketplace.sessions import service

router = APIRouter()


def _current_jti(request: Request, user: User):
    payload = current_refresh_payload(request)
    if payload and payload.get("uid") == user.id:
        return payload.get("jti")
    return None


@router.get("/sessions")
async def list_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active sessions of the caller, flagging the current device."""
    await touch_session(db, get_refresh_cookie(request), request)
    current_jti = _current_jti(request, current_user)
    rows = await service.list_active_sessions(db, current_user.id)
    return {"sessions": [service.serialize_session(r, current_jti) for r in rows]}


@router.delete("/sessions/{jti}")
async def revoke_session(
    jti: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"revoked": await service.revoke_one(db, current_user.id, jti)}


@router.post("/sessions/revoke-others")
async def revoke_other_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    current_jti = _current_jti(request, current_user)
    return {"revoked": await service.revoke_others(db, current_user.id, current_jti)}


@router.post("/sessions/revoke-all")
async def revoke_all_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Log out everywhere, including this device."""
    revoked = await service.revoke_all(db, current_user)
    response = JSONResponse({"revoked": revoked})
    clear_refresh_cookie(response, request)
    return response
