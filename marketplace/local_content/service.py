"""Location-scoped queries for raffles and auctions."""
from typing import List, Tuple, Type

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.geo.distance import DEFAULT_RADIUS_KM, bounding_box, haversine_km
from marketplace.models import Auction, Raffle, as_utc

LOCAL_CONTENT_TYPES = {"rifas": Raffle, "subastas": Auction}
RETIRED_CONTENT_TYPES = ("ofertas", "promos", "promociones")


async def find_nearby(
    db: AsyncSession,
    model: Type,
    lat: float,
    lng: float,
    radius_km: float = DEFAULT_RADIUS_KM,
) -> List[Tuple[object, float]]:
    """
    Rows of ``model`` within ``radius_km`` of the point, nearest first.

    A bounding box narrows the query; the exact haversine distance
    decides membership.
    """
    min_lat, max_lat, lng_ranges = bounding_box(lat, lng, radius_km)
    result = await db.execute(
        select(model).where(
            model.lat.isnot(None),
            model.lng.isnot(None),
            model.lat.between(min_lat, max_lat),
            or_(*(model.lng.between(low, high) for low, high in lng_ranges)),
        )
    )
    found = []
    for row in result.scalars().all():
        distance = haversine_km(lat, lng, row.lat, row.lng)
        if distance <= radius_km:
            found.append((row, distance))
    found.sort(key=lambda pair: pair[1])
    return found


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_auction(a: Auction, distance_km: float = None) -> dict:
    data = {
        "_id": a.id,
        "titulo": a.titulo,
        "descripcion": a.descripcion,
        "precioInicial": a.precio_inicial,
        "fechaLimite": _iso(a.fecha_limite),
        "ciudad": a.ciudad,
        "estado": a.estado_region,
        "coordenadas": {"type": "Point", "coordinates": [a.lng, a.lat]},
        "usuario": a.usuario_id,
        "createdAt": _iso(a.created_at),
    }
    if distance_km is not None:
        data["distanciaKm"] = round(distance_km, 2)
    return data
