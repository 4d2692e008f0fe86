"""Geocoding routes (city validation, reverse lookup, autocomplete)."""
from fastapi import APIRouter, Query, Request

from marketplace.errors import BadRequestError
from marketplace.geo.distance import to_float
from marketplace.geo.nominatim import AUTOCOMPLETE_LIMIT, CITY_TYPES, get_nominatim, place_name
from marketplace.middleware.rate_limit import limiter

router = APIRouter()


@router.get("/verify-city")
@limiter.limit("60/minute")
async def verify_city(
    request: Request,
    q: str = Query(""),
    country: str = Query(""),
    countrycodes: str = Query(""),
):
    """Whether ``q`` resolves to a city-level place, with its normalized name."""
    q = q.strip()
    if not q:
        raise BadRequestError("q is required")

    results = await get_nominatim().search(q, (country or countrycodes).strip())
    if not results:
        return {"valid": False}

    first = results[0] or {}
    kind = str(first.get("type") or "").lower()
    return {"valid": kind in CITY_TYPES, "normalized": place_name(first)}


@router.get("/reverse")
@limiter.limit("60/minute")
async def reverse_city(request: Request, lat: str = Query(""), lon: str = Query("")):
    lat_f, lon_f = to_float(lat), to_float(lon)
    if lat_f is None or lon_f is None:
        raise BadRequestError("lat/lon are required")

    data = await get_nominatim().reverse(lat_f, lon_f)
    name = place_name(data)
    kind = str(data.get("type") or data.get("addresstype") or "").lower()
    return {"ok": True, "valid": bool(name), "city": name, "type": kind}


@router.get("/autocomplete")
@limiter.limit("120/minute")
async def autocomplete(request: Request, q: str = Query(""), country: str = Query("")):
    q = q.strip()
    if len(q) < 2:
        return {"items": []}

    results = await get_nominatim().search(q, country.strip(), limit=AUTOCOMPLETE_LIMIT)
    items = [
        {
            "name": place_name(r),
            "displayName": r.get("display_name", ""),
            "lat": to_float(r.get("lat")),
            "lon": to_float(r.get("lon")),
        }
        for r in results[:AUTOCOMPLETE_LIMIT]
    ]
    return {"items": items}
