"""Chat schemas."""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class EnsurePrivateRequest(BaseModel):
    """Either id may be the caller; the other one is the target."""
    usuarioAId: Optional[str] = None
    usuarioBId: Optional[str] = None
    anuncioId: Optional[str] = None


class ReplyRef(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    texto: Optional[str] = None
    preview: Optional[str] = None
    autor: Optional[Union[Dict[str, Any], str]] = None

    model_config = {"populate_by_name": True}


class SendMessageRequest(BaseModel):
    texto: Optional[str] = ""
    archivos: List[Dict[str, Any]] = Field(default_factory=list)
    replyTo: Optional[ReplyRef] = None
    forwardOf: Optional[Union[Dict[str, Any], str]] = None


class EditMessageRequest(BaseModel):
    texto: Optional[str] = None
    eliminarImagen: Union[bool, str, None] = False

    @property
    def remove_attachments(self) -> bool:
        return self.eliminarImagen is True or str(self.eliminarImagen or "").lower() == "true"


class BackgroundRequest(BaseModel):
    backgroundUrl: str = ""
