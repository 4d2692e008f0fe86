"""Promotion schemas."""
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    type: str = "Point"
    coordinates: List[Any] = []


class PromotionCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    titulo: str = ""
    descripcion: str = ""
    precio: Optional[Any] = None
    categoria: Optional[str] = None
    imagen: str = ""
    ciudad: str = ""
    ubicacion: Optional[Location] = None


class ReactionRequest(BaseModel):
    tipo: str = ""
