"""Promotion reactions, saves and projection."""
from typing import List, Optional

from marketplace.models import Promotion, User, as_utc

ALLOWED_REACTIONS = ("like", "love")


def toggle_reaction(reactions: List[dict], user_id: str, tipo: str) -> List[dict]:
    """Same type removes the reaction, another type switches it, none adds it."""
    result = []
    found = False
    for r in reactions or []:
        if r.get("usuario") != user_id:
            result.append(dict(r))
            continue
        found = True
        if r.get("tipo") != tipo:
            result.append({"usuario": user_id, "tipo": tipo})
    if not found:
        result.append({"usuario": user_id, "tipo": tipo})
    return result


def toggle_saved(saved: List[str], user_id: str) -> List[str]:
    saved = list(saved or [])
    if user_id in saved:
        return [u for u in saved if u != user_id]
    return saved + [user_id]


def serialize_promotion(p: Promotion, creator: Optional[User] = None) -> dict:
    created = as_utc(p.created_at)
    expires = as_utc(p.fecha_expiracion)
    return {
        "_id": p.id,
        "titulo": p.titulo,
        "descripcion": p.descripcion,
        "imagen": p.imagen,
        "precio": p.precio,
        "categoria": p.categoria,
        "estado": p.estado,
        "fechaExpiracion": expires.isoformat() if expires else None,
        "creador": {"_id": creator.id, "nombre": creator.nombre} if creator else p.creador_id,
        "ubicacion": {"type": "Point", "coordinates": [p.lng, p.lat]},
        "ciudad": p.ciudad,
        "likes": list(p.reacciones or []),
        "guardados": list(p.guardados or []),
        "visualizaciones": p.visualizaciones,
        "createdAt": created.isoformat() if created else None,
    }
