"""Business plan limits, photo editing and API projections."""
from datetime import datetime
from typing import List, Optional

from marketplace.media.cloudinary import thumbnail_url
from marketplace.models import Business, as_utc

MAX_ACTIVE_BUSINESSES = {1: 1, 2: 3, 3: 10}
MAX_CARD_PHOTOS = {1: 4, 2: 8, 3: 15}
MAX_DETAIL_PHOTOS = {1: 10, 2: 15, 3: 30}


def _plan(perfil: Optional[int]) -> int:
    try:
        level = int(perfil or 1)
    except (TypeError, ValueError):
        return 1
    return min(max(level, 1), 3)


def max_active_businesses(perfil: Optional[int]) -> int:
    return MAX_ACTIVE_BUSINESSES[_plan(perfil)]


def max_card_photos(perfil: Optional[int]) -> int:
    return MAX_CARD_PHOTOS[_plan(perfil)]


def max_detail_photos(perfil: Optional[int]) -> int:
    return MAX_DETAIL_PHOTOS[_plan(perfil)]


def apply_photo_changes(
    fotos: List[str],
    replace: Optional[List[str]] = None,
    add: Optional[List[str]] = None,
    remove: Optional[List[str]] = None,
    order: Optional[List[str]] = None,
) -> List[str]:
    """Apply replace, add (deduplicated), remove and reorder, in that order."""
    result = list(fotos or [])
    if replace is not None:
        result = [u for u in replace if u]
    if add:
        for url in add:
            if url and url not in result:
                result.append(url)
    if remove:
        dropped = {u for u in remove if u}
        result = [u for u in result if u not in dropped]
    if order:
        present = set(result)
        ordered = []
        for url in order:
            if url in present and url not in ordered:
                ordered.append(url)
        result = ordered + [u for u in result if u not in ordered]
    return result


def with_thumbs(urls: List[str]) -> List[dict]:
    return [{"url": u, "thumbUrl": thumbnail_url(u)} for u in urls]


def is_open(closing_time: str, now: Optional[datetime] = None) -> bool:
    """Open unless a HH:MM closing time has already passed today."""
    if not closing_time:
        return True
    try:
        hours, minutes = (int(p) for p in closing_time.split(":")[:2])
    except ValueError:
        return True
    now = now or datetime.now()
    return (now.hour, now.minute) < (hours, minutes)


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_business(b: Business) -> dict:
    """Owner view of a business."""
    return {
        "id": b.id,
        "usuarioId": b.user_id,
        "nombre": b.nombre,
        "categoria": b.categoria,
        "categoriaSlug": b.categoria_slug,
        "subcategoria": b.subcategoria,
        "subcategoriaSlug": b.subcategoria_slug,
        "ciudad": b.ciudad,
        "whatsapp": b.whatsapp,
        "telefono": b.telefono,
        "direccion": b.direccion,
        "descripcion": b.descripcion,
        "activo": bool(b.activo),
        "logoUrl": b.logo_url,
        "fotos": list(b.fotos or []),
        "createdAt": _iso(b.created_at),
        "updatedAt": _iso(b.updated_at),
    }


def serialize_card(b: Business, owner_perfil: Optional[int]) -> dict:
    """Public listing card; the gallery is capped by the owner's plan."""
    gallery = with_thumbs(list(b.fotos or [])[:max_card_photos(owner_perfil)])
    cover = gallery[0] if gallery else {"url": "", "thumbUrl": ""}
    return {
        "id": b.id,
        "name": b.nombre,
        "category": b.categoria or "",
        "photoUrl": cover["url"],
        "thumbUrl": cover["thumbUrl"],
        "rating": b.rating or 0,
        "reviews": b.reviews or 0,
        "logoUrl": b.logo_url or "",
        "badges": list(b.badges or []),
        "isOpen": is_open(b.closing_time),
        "closingTime": b.closing_time or "",
        "description": b.descripcion or "",
        "promoText": b.promo_text or "",
        "promoExpiresAt": _iso(b.promo_expires_at),
        "priceLevel": b.price_level or 1,
        "gallery": gallery,
        "isFavorite": False,
    }


def serialize_detail(b: Business, owner_perfil: Optional[int]) -> dict:
    fotos = list(b.fotos or [])[:max_detail_photos(owner_perfil)]
    cover = fotos[0] if fotos else ""
    return {
        "id": b.id,
        "nombre": b.nombre,
        "categoria": b.categoria or "",
        "categoriaSlug": b.categoria_slug or "",
        "subcategoria": b.subcategoria or "",
        "subcategoriaSlug": b.subcategoria_slug or "",
        "ciudad": b.ciudad,
        "telefono": b.telefono or b.whatsapp or "",
        "direccion": b.direccion or "",
        "descripcion": b.descripcion or "",
        "fotos": with_thumbs(fotos),
        "portada": cover,
        "thumbUrl": thumbnail_url(cover) if cover else "",
        "activo": b.activo is not False,
        "createdAt": _iso(b.created_at),
    }
