"""Raffle (rifa) and auction (subasta) models."""
import enum

from sqlalchemy import Column, String, DateTime, Integer, Float, JSON, ForeignKey, Text

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class RaffleType(str, enum.Enum):
    ALEATORIA = "aleatoria"
    LOTERIA = "loteria"
    EXPRES = "expres"
    FLASH = "flash"
    RANKING = "ranking"
    DINERO = "dinero"


class RaffleStatus(str, enum.Enum):
    ACTIVA = "activa"
    FINALIZADA = "finalizada"
    CANCELADA = "cancelada"
    POSPUESTA = "pospuesta"


class Raffle(Base):
    """A raffle with numbered tickets."""

    __tablename__ = "raffles"

    id = Column(String, primary_key=True, default=lambda: generate_id("rifa"))
    organizador_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    titulo = Column(String, nullable=False)
    descripcion = Column(Text, nullable=False)
    imagen = Column(String, nullable=False, default="")
    precio_boleto = Column(Float, nullable=False)
    cantidad_boletos = Column(Integer, nullable=False)
    boletos_disponibles = Column(JSON, nullable=False, default=list)
    boletos_vendidos = Column(JSON, nullable=False, default=list)
    tipo = Column(String, nullable=False, default=RaffleType.ALEATORIA.value)
    fecha_sorteo = Column(DateTime(timezone=True), nullable=False)
    reglas = Column(Text, nullable=False, default="")
    estado = Column(String, nullable=False, default=RaffleStatus.ACTIVA.value)
    ganador_id = Column(String, nullable=True)

    lng = Column(Float, nullable=False)
    lat = Column(Float, nullable=False)
    ciudad = Column(String, nullable=False, default="")
    estado_region = Column(String, nullable=False, default="")

    # [{"usuario": uid, "numeros": [..], "estadoPago": "pendiente"}]
    participantes = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Auction(Base):
    """A simple auction listing."""

    __tablename__ = "auctions"

    id = Column(String, primary_key=True, default=lambda: generate_id("sub"))
    usuario_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    titulo = Column(String, nullable=False, default="")
    descripcion = Column(Text, nullable=False, default="")
    precio_inicial = Column(Float, nullable=False, default=0)
    fecha_limite = Column(DateTime(timezone=True), nullable=True)
    ciudad = Column(String, nullable=False, default="")
    estado_region = Column(String, nullable=False, default="")
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
