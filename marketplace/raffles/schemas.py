"""Raffle schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from marketplace.models import RaffleType


class RaffleLocation(BaseModel):
    type: str = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2)
    ciudad: str = ""
    estado: str = ""


class RaffleCreate(BaseModel):
    """Schema for creating a raffle; the caller becomes the organizer."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    titulo: str = Field(..., min_length=1, max_length=200)
    descripcion: str = Field(..., min_length=1)
    imagen: str = ""
    precio_boleto: float = Field(..., ge=0, alias="precioBoleto")
    cantidad_boletos: int = Field(..., ge=1, le=100000, alias="cantidadBoletos")
    tipo_rifa: RaffleType = Field(RaffleType.ALEATORIA, alias="tipoRifa")
    fecha_sorteo: datetime = Field(..., alias="fechaSorteo")
    reglas: Optional[str] = ""
    ubicacion: RaffleLocation
