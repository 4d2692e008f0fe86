"""Coupon helpers: expiry resolution, redemption codes and serialization."""
import math
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Select, select

from marketplace.media.cloudinary import thumbnail_url
from marketplace.models import Coupon, CouponRedemption, as_utc

DEFAULT_COLOR = "#2563eb"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def to_ms(value: Optional[datetime]) -> Optional[int]:
    value = as_utc(value)
    return int(value.timestamp() * 1000) if value else None


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def minutes_left(vence_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole minutes until expiry, rounded up; 0 once expired."""
    vence_at = as_utc(vence_at)
    if vence_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return max(0, math.ceil((vence_at - now).total_seconds() / 60))


def resolve_vence_at(
    vence_at: Optional[str] = None,
    ttl_min: Optional[float] = None,
    ttl_horas: Optional[float] = None,
    ttl_dias: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Absolute ISO expiry wins; otherwise the positive TTL parts are summed."""
    if vence_at:
        try:
            parsed = datetime.fromisoformat(vence_at.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return as_utc(parsed).astimezone(timezone.utc)

    ttl = timedelta()
    if ttl_min and ttl_min > 0:
        ttl += timedelta(minutes=ttl_min)
    if ttl_horas and ttl_horas > 0:
        ttl += timedelta(hours=ttl_horas)
    if ttl_dias and ttl_dias > 0:
        ttl += timedelta(days=ttl_dias)
    if ttl:
        return (now or datetime.now(timezone.utc)) + ttl
    return None


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def is_expired(coupon: Coupon, now: Optional[datetime] = None) -> bool:
    vence_at = as_utc(coupon.vence_at)
    return vence_at is None or vence_at <= (now or datetime.now(timezone.utc))


def feed_item(coupon: Coupon) -> dict:
    """Payload pushed to the realtime coupon feed."""
    return {
        "id": coupon.id,
        "titulo": coupon.titulo,
        "etiqueta": coupon.etiqueta or "",
        "colorHex": coupon.color_hex or DEFAULT_COLOR,
        "expiresAt": to_ms(coupon.vence_at),
        "publishedAt": to_ms(coupon.created_at) or now_ms(),
        "serverNow": now_ms(),
    }


def serialize_coupon(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "negocioId": coupon.negocio_id or "",
        "titulo": coupon.titulo,
        "etiqueta": coupon.etiqueta or "",
        "colorHex": coupon.color_hex or DEFAULT_COLOR,
        "expiresAt": to_ms(coupon.vence_at),
        "publishedAt": to_ms(coupon.created_at),
        "venceEnMin": minutes_left(coupon.vence_at),
        "imageUrl": coupon.image_url or "",
        "thumbUrl": thumbnail_url(coupon.image_url),
        "logoUrl": coupon.logo_url or "",
    }


def serialize_available(coupon: Coupon, redemption: CouponRedemption) -> dict:
    item = serialize_coupon(coupon)
    item.pop("negocioId")
    item["couponId"] = redemption.id
    item["estado"] = redemption.estado
    item["codigo"] = redemption.codigo
    return item


def lock_coupon(coupon_id: str) -> Select:
    """
    Load a coupon holding its row lock until the transaction ends.

    Redeemers of the same coupon queue behind the lock, so the per-user
    count and the stock reservation see every committed redemption.
    """
    return (
        select(Coupon)
        .where(Coupon.id == coupon_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
