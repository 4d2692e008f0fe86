"""Coupon API routes."""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import get_current_user, require_merchant
from marketplace.coupons import service
from marketplace.coupons.schemas import CouponCreate, UseCouponRequest
from marketplace.database import get_db
from marketplace.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from marketplace.geo.distance import to_float
from marketplace.media.cloudinary import get_cloudinary
from marketplace.models import Business, Coupon, CouponRedemption, User
from marketplace.realtime import coupon_feed

logger = logging.getLogger(__name__)

router = APIRouter()

CODE_ATTEMPTS = 5


@router.get("/expiring")
async def list_expiring(
    limit: int = Query(10, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Published coupons that have not expired yet, soonest expiry first."""
    limit = min(limit, 100)
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(Coupon)
        .where(Coupon.activa.is_(True), Coupon.estado == "publicado", Coupon.vence_at > now)
        .order_by(Coupon.vence_at.asc())
        .limit(limit)
    )
    items = [service.serialize_coupon(c) for c in result.scalars().all()]
    return {"serverNow": service.now_ms(), "items": items}


@router.post("", status_code=201)
async def create_coupon(
    data: CouponCreate,
    current_user: User = Depends(require_merchant),
    db: AsyncSession = Depends(get_db),
):
    titulo = data.titulo.strip()
    valor = to_float(data.valor)
    if not data.negocio_id or not titulo or not valor:
        raise BadRequestError("negocioId, titulo and valor are required")

    vence_at = service.resolve_vence_at(data.vence_at, data.ttl_min, data.ttl_horas, data.ttl_dias)
    if vence_at is None:
        raise BadRequestError("Send venceAt (ISO) or ttlMin/ttlHoras/ttlDias")

    if not await db.get(Business, data.negocio_id):
        raise NotFoundError("Business not found")

    coupon = Coupon(
        negocio_id=data.negocio_id,
        titulo=titulo,
        etiqueta=data.etiqueta.strip(),
        tipo=data.tipo if data.tipo in ("percent", "fixed") else "percent",
        valor=valor,
        color_hex=data.color_hex or service.DEFAULT_COLOR,
        vence_at=vence_at,
        estado=data.estado or "publicado",
        stock_total=data.stock_total,
        limit_por_usuario=data.limit_por_usuario,
        image_url=data.image_url,
        image_public_id=data.image_public_id,
        logo_url=data.logo_url,
        logo_public_id=data.logo_public_id,
        creado_por=current_user.id,
    )
    db.add(coupon)
    await db.commit()
    await db.refresh(coupon)
    logger.info(f"Coupon {coupon.id} published for business {coupon.negocio_id}")

    if coupon.estado == "publicado":
        await coupon_feed.publish(service.feed_item(coupon))
    return {"ok": True, "id": coupon.id}


@router.get("/available")
async def list_available(
    limit: int = Query(50, ge=1),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's redeemed but unused coupons that are still valid."""
    limit = min(limit, 100)
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(CouponRedemption, Coupon)
        .join(Coupon, Coupon.id == CouponRedemption.cupon_id)
        .where(
            CouponRedemption.usuario_id == current_user.id,
            CouponRedemption.estado != "usado",
            Coupon.activa.is_(True),
            Coupon.vence_at > now,
        )
        .order_by(Coupon.vence_at.asc())
        .limit(limit)
    )
    items = [service.serialize_available(coupon, redemption) for redemption, coupon in result.all()]
    return {"serverNow": service.now_ms(), "items": items}


async def _unique_code(db: AsyncSession) -> str:
    for _ in range(CODE_ATTEMPTS):
        codigo = service.generate_code()
        taken = await db.execute(select(CouponRedemption.id).where(CouponRedemption.codigo == codigo))
        if taken.scalar_one_or_none() is None:
            return codigo
    raise ConflictError("Could not allocate a redemption code, try again")


@router.post("/{coupon_id}/redeem", status_code=201)
async def redeem_coupon(
    coupon_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Assign a coupon to the caller.

    The coupon row is locked before the per-user count, so two concurrent
    requests from one user cannot both pass ``limit_por_usuario``. Limited
    stock is reserved with a conditional UPDATE so that concurrent
    redemptions can never push ``stock_usado`` past ``stock_total``.
    """
    coupon = (await db.execute(service.lock_coupon(coupon_id))).scalar_one_or_none()
    if not coupon or coupon.activa is not True:
        raise NotFoundError("Coupon not found")
    if service.is_expired(coupon):
        raise BadRequestError("The coupon has expired")

    used_by_user = (await db.execute(
        select(func.count(CouponRedemption.id)).where(
            CouponRedemption.cupon_id == coupon.id,
            CouponRedemption.usuario_id == current_user.id,
        )
    )).scalar() or 0
    if used_by_user >= (coupon.limit_por_usuario or 1):
        raise ConflictError("Per-user limit reached")

    if (coupon.stock_total or 0) > 0:
        reserved = await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon.id, Coupon.stock_usado < Coupon.stock_total)
            .values(stock_usado=Coupon.stock_usado + 1)
        )
        if reserved.rowcount == 0:
            await db.rollback()
            raise ConflictError("Out of stock")

    redemption = CouponRedemption(
        cupon_id=coupon.id,
        usuario_id=current_user.id,
        estado="asignado",
        codigo=await _unique_code(db),
    )
    db.add(redemption)
    await db.commit()
    await db.refresh(redemption)
    return {"ok": True, "couponId": redemption.id, "codigo": redemption.codigo}


@router.post("/use")
async def use_coupon(
    data: UseCouponRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark a redemption as used (by its owner or by a merchant at the counter)."""
    if not data.coupon_id:
        raise BadRequestError("couponId is required")

    redemption = await db.get(CouponRedemption, data.coupon_id)
    if not redemption:
        raise NotFoundError("Coupon not found")
    if redemption.usuario_id != current_user.id and not current_user.is_merchant:
        raise ForbiddenError("Not allowed to use this coupon")
    if redemption.estado == "usado":
        raise ConflictError("Coupon already used")

    coupon = await db.get(Coupon, redemption.cupon_id)
    if coupon is None or service.is_expired(coupon):
        raise ConflictError("Coupon expired")

    redemption.estado = "usado"
    redemption.usado_at = datetime.now(timezone.utc)
    await db.commit()
    return {"ok": True}


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found")
    if coupon.creado_por != current_user.id and not current_user.is_merchant:
        raise ForbiddenError("Not allowed")

    public_ids = [coupon.image_public_id, coupon.logo_public_id]
    await db.delete(coupon)
    await db.commit()
    logger.info(f"Coupon {coupon_id} deleted by {current_user.id}")

    await coupon_feed.remove(coupon_id)
    await get_cloudinary().destroy_many([p for p in public_ids if p])
    return {"ok": True}
