"""Raffle API routes."""
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import get_current_user
from marketplace.database import get_db
from marketplace.errors import BadRequestError, ForbiddenError, NotFoundError
from marketplace.geo.distance import DEFAULT_RADIUS_KM, parse_lat_lng
from marketplace.local_content.service import find_nearby
from marketplace.middleware.rate_limit import limiter
from marketplace.models import Raffle, User
from marketplace.raffles.schemas import RaffleCreate
from marketplace.raffles.service import serialize_raffle

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=201)
@limiter.limit("20/minute")
async def create_raffle(
    request: Request,
    data: RaffleCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a raffle with tickets 1..N available."""
    lng, lat = data.ubicacion.coordinates
    if parse_lat_lng(lat, lng) is None:
        raise BadRequestError("Coordinates out of range")

    raffle = Raffle(
        organizador_id=current_user.id,
        titulo=data.titulo.strip(),
        descripcion=data.descripcion.strip(),
        imagen=data.imagen,
        precio_boleto=data.precio_boleto,
        cantidad_boletos=data.cantidad_boletos,
        boletos_disponibles=list(range(1, data.cantidad_boletos + 1)),
        boletos_vendidos=[],
        tipo=data.tipo_rifa.value,
        fecha_sorteo=data.fecha_sorteo,
        reglas=data.reglas or "",
        lng=lng,
        lat=lat,
        ciudad=data.ubicacion.ciudad,
        estado_region=data.ubicacion.estado,
        participantes=[],
    )
    db.add(raffle)
    await db.commit()
    await db.refresh(raffle)
    logger.info(f"Raffle {raffle.id} created by {current_user.id}")
    return {"mensaje": "Rifa creada correctamente", "rifa": serialize_raffle(raffle)}


@router.get("/local")
@limiter.limit("60/minute")
async def local_raffles(
    request: Request,
    lat: str = Query(""),
    lng: str = Query(""),
    db: AsyncSession = Depends(get_db),
):
    """Raffles within 100 km, nearest first."""
    if not lat or not lng:
        raise BadRequestError("Missing lat/lng coordinates")
    point = parse_lat_lng(lat, lng)
    if point is None:
        raise BadRequestError("Invalid coordinates")
    nearby = await find_nearby(db, Raffle, point[0], point[1], DEFAULT_RADIUS_KM)
    return [serialize_raffle(r, d) for r, d in nearby]


@router.get("/{raffle_id}")
@limiter.limit("60/minute")
async def get_raffle(request: Request, raffle_id: str, db: AsyncSession = Depends(get_db)):
    raffle = await db.get(Raffle, raffle_id)
    if not raffle:
        raise NotFoundError("Raffle not found")
    return serialize_raffle(raffle)


@router.delete("/{raffle_id}")
@limiter.limit("20/minute")
async def delete_raffle(
    request: Request,
    raffle_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    raffle = await db.get(Raffle, raffle_id)
    if not raffle:
        raise NotFoundError("Raffle not found")
    if raffle.organizador_id != current_user.id:
        raise ForbiddenError("Only the organizer can delete this raffle")
    await db.delete(raffle)
    await db.commit()
    return {"mensaje": "Rifa eliminada correctamente"}
