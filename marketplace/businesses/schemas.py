"""Business schemas."""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class BusinessCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nombre: str = ""
    categoria: str = ""
    subcategoria: str = ""
    ciudad: str = ""
    whatsapp: str = ""


class BusinessUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""
    model_config = ConfigDict(extra="ignore")

    nombre: Optional[str] = None
    categoria: Optional[str] = None
    subcategoria: Optional[str] = None
    ciudad: Optional[str] = None
    whatsapp: Optional[str] = None
    telefono: Optional[str] = None
    direccion: Optional[str] = None
    descripcion: Optional[str] = None


class PhotosUpdate(BaseModel):
    replace: Optional[List[str]] = None
    add: Optional[List[str]] = None
    remove: Optional[List[str]] = None
    order: Optional[List[str]] = None
