"""Business API routes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.auth.dependencies import get_current_user, get_optional_user, require_merchant
from marketplace.businesses import service
from marketplace.businesses.categories import canonical_category, subcategory_belongs, to_slug
from marketplace.businesses.schemas import BusinessCreate, BusinessUpdate, PhotosUpdate
from marketplace.database import get_db
from marketplace.errors import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError
from marketplace.models import Business, User

logger = logging.getLogger(__name__)

router = APIRouter()

TRUE_VALUES = {"1", "true", "yes", "on"}


async def _owned(db: AsyncSession, business_id: str, user_id: str) -> Business:
    result = await db.execute(
        select(Business).where(Business.id == business_id, Business.user_id == user_id)
    )
    business = result.scalar_one_or_none()
    if not business:
        raise NotFoundError("Business not found")
    return business


def _validate_categories(categoria: str, subcategoria: str) -> tuple:
    """Return (category_slug, subcategory_slug) or raise 400."""
    cat_slug = canonical_category(categoria)
    if not cat_slug:
        raise BadRequestError("Invalid category")
    sub_slug = to_slug(subcategoria) if subcategoria else ""
    if sub_slug and not subcategory_belongs(cat_slug, sub_slug):
        raise BadRequestError("Subcategory does not belong to this group")
    return cat_slug, sub_slug


@router.get("/public")
async def list_public(
    q: str = Query(""),
    categoria: str = Query(""),
    grupo: str = Query(""),
    subcategoria: str = Query(""),
    subcat: str = Query(""),
    ciudad: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Active businesses as cards, newest first."""
    limit = min(limit, 50)
    filters = [Business.activo.is_(True)]

    cat_slug = canonical_category((categoria or grupo).strip())
    if cat_slug:
        filters.append(Business.categoria_slug == cat_slug)
    sub_raw = (subcategoria or subcat).strip()
    if sub_raw:
        filters.append(Business.subcategoria_slug == to_slug(sub_raw))
    if ciudad.strip():
        filters.append(Business.ciudad == ciudad.strip())
    if q.strip():
        needle = f"%{q.strip().lower()}%"
        filters.append(or_(
            func.lower(Business.nombre).like(needle),
            func.lower(Business.descripcion).like(needle),
        ))

    total = (await db.execute(select(func.count(Business.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Business, User.perfil)
        .join(User, User.id == Business.user_id)
        .where(*filters)
        .order_by(Business.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [service.serialize_card(b, perfil) for b, perfil in result.all()]
    return {"ok": True, "page": page, "limit": limit, "total": total, "items": items}


@router.post("", status_code=201)
async def create_business(
    data: BusinessCreate,
    current_user: User = Depends(require_merchant),
    db: AsyncSession = Depends(get_db),
):
    nombre, categoria, ciudad = data.nombre.strip(), data.categoria.strip(), data.ciudad.strip()
    subcategoria = data.subcategoria.strip()
    if not nombre or not categoria or not ciudad:
        raise BadRequestError("Missing required fields")
    cat_slug, sub_slug = _validate_categories(categoria, subcategoria)

    active = (await db.execute(
        select(func.count(Business.id)).where(Business.user_id == current_user.id, Business.activo.is_(True))
    )).scalar() or 0
    if active >= service.max_active_businesses(current_user.perfil):
        raise ForbiddenError("You reached the active business limit of your plan")

    business = Business(
        user_id=current_user.id,
        nombre=nombre,
        categoria=categoria,
        categoria_slug=cat_slug,
        subcategoria=subcategoria,
        subcategoria_slug=sub_slug,
        ciudad=ciudad,
        whatsapp=data.whatsapp.strip(),
    )
    db.add(business)
    await db.commit()
    await db.refresh(business)
    logger.info(f"Business {business.id} created by {current_user.id}")
    return {"ok": True, "negocio": service.serialize_business(business)}


@router.get("/mis")
async def list_mine(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    limit = min(limit, 50)
    total = (await db.execute(
        select(func.count(Business.id)).where(Business.user_id == current_user.id)
    )).scalar() or 0
    result = await db.execute(
        select(Business)
        .where(Business.user_id == current_user.id)
        .order_by(Business.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [service.serialize_business(b) for b in result.scalars().all()]
    return {"ok": True, "page": page, "limit": limit, "total": total, "items": items}


@router.get("/mis/count")
async def count_mine(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = (await db.execute(
        select(func.count(Business.id)).where(Business.user_id == current_user.id, Business.activo.is_(True))
    )).scalar() or 0
    return {"ok": True, "count": count}


@router.get("")
async def list_for_select(
    mine: str = Query(""),
    activo: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Minimal projection used to fill selects."""
    limit = min(limit, 100)
    query = select(Business)
    if mine == "1":
        if current_user is None:
            raise UnauthorizedError("Not authenticated")
        query = query.where(Business.user_id == current_user.id)
    if activo is not None:
        query = query.where(Business.activo.is_(activo.strip().lower() in TRUE_VALUES))

    result = await db.execute(query.order_by(Business.nombre).offset((page - 1) * limit).limit(limit))
    items = [
        {"id": b.id, "nombre": b.nombre, "activo": b.activo is not False, "logoUrl": b.logo_url or None}
        for b in result.scalars().all()
    ]
    return {"ok": True, "page": page, "limit": limit, "items": items}


@router.patch("/{business_id}/toggle-activo")
async def toggle_active(
    business_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    business = await _owned(db, business_id, current_user.id)
    business.activo = not business.activo
    await db.commit()
    await db.refresh(business)
    return {"ok": True, "negocio": service.serialize_business(business)}


@router.patch("/{business_id}")
async def update_business(
    business_id: str,
    data: BusinessUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    business = await _owned(db, business_id, current_user.id)
    updates = data.model_dump(exclude_unset=True)

    for field, value in updates.items():
        value = (value or "").strip()
        # Required fields cannot be blanked
        if field in ("nombre", "categoria", "ciudad") and not value:
            continue
        setattr(business, field, value)

    if "categoria" in updates or "subcategoria" in updates:
        business.categoria_slug, business.subcategoria_slug = _validate_categories(
            business.categoria, business.subcategoria
        )

    if not business.nombre or not business.categoria_slug or not business.ciudad:
        raise BadRequestError("Name, category and city are required")

    await db.commit()
    await db.refresh(business)
    return {"ok": True, "negocio": service.serialize_business(business)}


@router.delete("/{business_id}")
async def delete_business(
    business_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    business = await _owned(db, business_id, current_user.id)
    await db.delete(business)
    await db.commit()
    return {"ok": True, "eliminado": True, "id": business_id}


@router.patch("/{business_id}/fotos")
async def update_photos(
    business_id: str,
    data: PhotosUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    business = await _owned(db, business_id, current_user.id)
    max_fotos = service.max_detail_photos(current_user.perfil)

    fotos = service.apply_photo_changes(business.fotos or [], data.replace, data.add, data.remove, data.order)
    if len(fotos) > max_fotos:
        raise ForbiddenError(f"Your plan only allows {max_fotos} photos")

    business.fotos = fotos
    await db.commit()
    await db.refresh(business)

    negocio = service.serialize_business(business)
    negocio["fotos"] = service.with_thumbs(fotos)
    return {
        "ok": True,
        "negocio": negocio,
        "remainingSlots": max(0, max_fotos - len(fotos)),
        "maxFotos": max_fotos,
    }


@router.get("/{business_id}")
async def get_business(business_id: str, db: AsyncSession = Depends(get_db)):
    business = await db.get(Business, business_id)
    if not business:
        raise NotFoundError("Business not found")
    if business.activo is False:
        raise ForbiddenError("Business not available")
    owner = await db.get(User, business.user_id)
    return {"ok": True, "negocio": service.serialize_detail(business, owner.perfil if owner else 1)}
