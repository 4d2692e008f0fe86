"""Coupon schemas."""
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class CouponCreate(BaseModel):
    """
    Schema for publishing a coupon.

    The expiry is either an absolute ``venceAt`` or a relative TTL made of
    ``ttlMin``, ``ttlHoras`` and ``ttlDias`` (summed).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    negocio_id: str = Field("", alias="negocioId")
    titulo: str = ""
    etiqueta: str = ""
    tipo: str = "percent"
    valor: Optional[Union[float, str]] = None
    color_hex: str = Field("", alias="colorHex")
    vence_at: Optional[str] = Field(None, alias="venceAt")
    ttl_min: Optional[float] = Field(None, alias="ttlMin")
    ttl_horas: Optional[float] = Field(None, alias="ttlHoras")
    ttl_dias: Optional[float] = Field(None, alias="ttlDias")
    stock_total: int = Field(0, ge=0, alias="stockTotal")
    limit_por_usuario: int = Field(1, ge=1, alias="limitPorUsuario")
    estado: str = "publicado"

    image_url: str = Field("", alias="imageUrl")
    image_public_id: str = Field("", alias="imagePublicId")
    logo_url: str = Field("", alias="logoUrl")
    logo_public_id: str = Field("", alias="logoPublicId")


class UseCouponRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coupon_id: str = Field("", alias="couponId")
