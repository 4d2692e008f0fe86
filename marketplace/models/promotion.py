"""Promotion (oferta) model."""
from sqlalchemy import Column, String, DateTime, Integer, Float, JSON, ForeignKey, Text

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class Promotion(Base):
    """A merchant promotion pinned to a location."""

    __tablename__ = "promotions"

    id = Column(String, primary_key=True, default=lambda: generate_id("promo"))
    creador_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    titulo = Column(String, nullable=False)
    descripcion = Column(Text, nullable=False)
    imagen = Column(String, nullable=False, default="")
    precio = Column(Float, nullable=False, default=0)
    categoria = Column(String, nullable=False, default="general")
    estado = Column(String, nullable=False, default="activa")  # activa | expirada | oculta
    fecha_expiracion = Column(DateTime(timezone=True), nullable=True)

    lng = Column(Float, nullable=False)
    lat = Column(Float, nullable=False)
    ciudad = Column(String, nullable=False, default="")
    estado_region = Column(String, nullable=False, default="")

    # [{"usuario": uid, "tipo": "like"|"love"}]
    reacciones = Column(JSON, nullable=False, default=list)
    guardados = Column(JSON, nullable=False, default=list)
    visualizaciones = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
