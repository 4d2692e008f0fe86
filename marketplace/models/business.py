"""Business (negocio) model."""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, JSON, ForeignKey, Text

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class Business(Base):
    """A merchant's business listing."""

    __tablename__ = "businesses"

    id = Column(String, primary_key=True, default=lambda: generate_id("biz"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    nombre = Column(String(120), nullable=False)

    # Human labels as sent by the client
    categoria = Column(String(120), nullable=False, default="")
    subcategoria = Column(String(120), nullable=False, default="")
    # Canonical slugs used for filtering
    categoria_slug = Column(String, nullable=False, index=True)
    subcategoria_slug = Column(String, nullable=False, default="", index=True)

    ciudad = Column(String(120), nullable=False)
    whatsapp = Column(String(20), nullable=False, default="")
    telefono = Column(String(20), nullable=False, default="")
    direccion = Column(String(200), nullable=False, default="")
    descripcion = Column(Text, nullable=False, default="")
    activo = Column(Boolean, nullable=False, default=True)

    # Card extras
    logo_url = Column(String, nullable=False, default="")
    badges = Column(JSON, nullable=False, default=list)
    rating = Column(Float, nullable=False, default=0)
    reviews = Column(Integer, nullable=False, default=0)
    price_level = Column(Integer, nullable=False, default=1)
    closing_time = Column(String, nullable=False, default="")
    promo_text = Column(String, nullable=False, default="")
    promo_expires_at = Column(DateTime(timezone=True), nullable=True)

    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    fotos = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
