"""Local content by type near a point (/contenido/local)."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.database import get_db
from marketplace.errors import BadRequestError, GoneError
from marketplace.geo.distance import DEFAULT_RADIUS_KM, parse_lat_lng, to_float
from marketplace.local_content.service import (
    LOCAL_CONTENT_TYPES,
    RETIRED_CONTENT_TYPES,
    find_nearby,
    serialize_auction,
)
from marketplace.models import Raffle
from marketplace.raffles.service import serialize_raffle

router = APIRouter()


@router.get("/local")
async def local_content(
    tipo: str = Query(""),
    lat: str = Query(""),
    lng: str = Query(""),
    radio_km: Optional[str] = Query(None, alias="radioKm"),
    db: AsyncSession = Depends(get_db),
):
    tipo = tipo.strip().lower()
    if not lat or not lng or not tipo:
        raise BadRequestError("Missing data (lat, lng, tipo)")
    point = parse_lat_lng(lat, lng)
    if point is None:
        raise BadRequestError("Invalid coordinates")
    if tipo in RETIRED_CONTENT_TYPES:
        raise GoneError("This module has been retired")

    model = LOCAL_CONTENT_TYPES.get(tipo)
    if model is None:
        raise BadRequestError("Invalid type")

    radius = to_float(radio_km) if radio_km else None
    if radius is None or radius <= 0:
        radius = DEFAULT_RADIUS_KM

    nearby = await find_nearby(db, model, point[0], point[1], radius)
    serialize = serialize_raffle if model is Raffle else serialize_auction
    return [serialize(row, distance) for row, distance in nearby]
