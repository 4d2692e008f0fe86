"""Promotion API routes."""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import get_current_user, require_merchant
from marketplace.database import get_db
from marketplace.errors import BadRequestError, NotFoundError
from marketplace.geo.distance import to_float
from marketplace.middleware.rate_limit import limiter
from marketplace.models import Promotion, User
from marketplace.promotions import service
from marketplace.promotions.schemas import PromotionCreate, ReactionRequest

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_promotion(db: AsyncSession, promotion_id: str) -> Promotion:
    promotion = await db.get(Promotion, promotion_id)
    if not promotion:
        raise NotFoundError("Promotion not found")
    return promotion


@router.post("", status_code=201)
async def create_promotion(
    data: PromotionCreate,
    current_user: User = Depends(require_merchant),
    db: AsyncSession = Depends(get_db),
):
    """Create a promotion. The location is required for local filtering."""
    titulo, descripcion = data.titulo.strip(), data.descripcion.strip()
    if not titulo or not descripcion:
        raise BadRequestError("Title and description are required")

    precio = None
    if data.precio is not None:
        precio = to_float(data.precio)
        if precio is None:
            raise BadRequestError("Invalid price")

    coords = data.ubicacion.coordinates if data.ubicacion else None
    if not isinstance(coords, list) or len(coords) != 2:
        raise BadRequestError("Invalid location: send coordinates [longitude, latitude]")
    lng, lat = to_float(coords[0]), to_float(coords[1])
    if lng is None or lat is None:
        raise BadRequestError("Coordinates must be numbers [longitude, latitude]")
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        raise BadRequestError("Coordinates out of range")

    promotion = Promotion(
        creador_id=current_user.id,
        titulo=titulo,
        descripcion=descripcion,
        imagen=data.imagen,
        precio=precio or 0,
        categoria=(data.categoria or "").strip() or "general",
        ciudad=data.ciudad.strip(),
        lng=lng,
        lat=lat,
        reacciones=[],
        guardados=[],
        visualizaciones=0,
    )
    db.add(promotion)
    await db.commit()
    await db.refresh(promotion)
    logger.info(f"Promotion {promotion.id} created by {current_user.id}")
    return service.serialize_promotion(promotion)


@router.get("/{promotion_id}")
async def get_promotion(promotion_id: str, db: AsyncSession = Depends(get_db)):
    promotion = await _get_promotion(db, promotion_id)
    creator = await db.get(User, promotion.creador_id)
    return service.serialize_promotion(promotion, creator)


@router.post("/{promotion_id}/visualizar")
@limiter.limit("120/minute")
async def count_view(request: Request, promotion_id: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        update(Promotion)
        .where(Promotion.id == promotion_id)
        .values(visualizaciones=Promotion.visualizaciones + 1)
    )
    if not result.rowcount:
        raise NotFoundError("Promotion not found")
    await db.commit()
    return {"mensaje": "Visualización registrada"}


@router.post("/{promotion_id}/reaccion")
@limiter.limit("60/minute")
async def react(
    request: Request,
    promotion_id: str,
    data: ReactionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tipo = data.tipo.strip().lower()
    if tipo not in service.ALLOWED_REACTIONS:
        raise BadRequestError("Invalid reaction type")
    promotion = await _get_promotion(db, promotion_id)
    promotion.reacciones = service.toggle_reaction(promotion.reacciones, current_user.id, tipo)
    await db.commit()
    return {"likes": promotion.reacciones}


@router.post("/{promotion_id}/guardar")
@limiter.limit("60/minute")
async def save(
    request: Request,
    promotion_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    promotion = await _get_promotion(db, promotion_id)
    promotion.guardados = service.toggle_saved(promotion.guardados, current_user.id)
    await db.commit()
    return {"guardados": promotion.guardados}
