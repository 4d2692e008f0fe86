"""Coupon and coupon redemption models."""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, ForeignKey, Index

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class Coupon(Base):
    """A time-limited discount published by a business."""

    __tablename__ = "coupons"
    __table_args__ = (
        Index("ix_coupons_active_expiry", "activa", "vence_at"),
    )

    id = Column(String, primary_key=True, default=lambda: generate_id("cup"))
    negocio_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    titulo = Column(String, nullable=False)
    etiqueta = Column(String, nullable=False, default="")
    tipo = Column(String, nullable=False, default="percent")  # percent | fixed
    valor = Column(Float, nullable=False)
    color_hex = Column(String, nullable=False, default="#2563eb")
    vence_at = Column(DateTime(timezone=True), nullable=False, index=True)
    activa = Column(Boolean, nullable=False, default=True)
    estado = Column(String, nullable=False, default="publicado")

    stock_total = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    stock_usado = Column(Integer, nullable=False, default=0)
    limit_por_usuario = Column(Integer, nullable=False, default=1)

    image_url = Column(String, nullable=False, default="")
    logo_url = Column(String, nullable=False, default="")
    image_public_id = Column(String, nullable=False, default="")
    logo_public_id = Column(String, nullable=False, default="")

    creado_por = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def stock_disponible(self) -> int:
        return max(0, (self.stock_total or 0) - (self.stock_usado or 0))


class CouponRedemption(Base):
    """A coupon assigned to a user, later marked as used."""

    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        Index("ix_coupon_redemptions_user_state", "usuario_id", "estado"),
    )

    id = Column(String, primary_key=True, default=lambda: generate_id("canje"))
    cupon_id = Column(String, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    usuario_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    estado = Column(String, nullable=False, default="asignado")  # asignado | usado | expirado
    codigo = Column(String, unique=True, nullable=False, index=True)
    canjeado_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    usado_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
