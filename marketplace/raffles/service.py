"""Raffle projection."""
from typing import Optional

from marketplace.models import Raffle, as_utc


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_raffle(r: Raffle, distance_km: Optional[float] = None) -> dict:
    data = {
        "_id": r.id,
        "titulo": r.titulo,
        "descripcion": r.descripcion,
        "imagen": r.imagen,
        "precioBoleto": r.precio_boleto,
        "cantidadBoletos": r.cantidad_boletos,
        "boletosDisponibles": list(r.boletos_disponibles or []),
        "boletosVendidos": list(r.boletos_vendidos or []),
        "tipoRifa": r.tipo,
        "fechaSorteo": _iso(r.fecha_sorteo),
        "reglas": r.reglas,
        "estado": r.estado,
        "ganador": r.ganador_id,
        "ubicacion": {
            "type": "Point",
            "coordinates": [r.lng, r.lat],
            "ciudad": r.ciudad,
            "estado": r.estado_region,
        },
        "organizador": r.organizador_id,
        "participantes": list(r.participantes or []),
        "createdAt": _iso(r.created_at),
        "updatedAt": _iso(r.updated_at),
    }
    if distance_km is not None:
        data["distanciaKm"] = round(distance_km, 2)
    return data
