"""Media schemas."""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class SignUploadRequest(BaseModel):
    """Parameters for a signed direct upload."""
    folder: Optional[str] = None
    env: Optional[str] = None
    tags: Optional[Union[List[str], str]] = None
    context: Optional[Dict[str, Any]] = None
    public_id: Optional[str] = None
    overwrite: bool = False
    invalidate: bool = False
    chatId: Optional[str] = None
    messageId: Optional[str] = None
    negocioId: Optional[str] = None


class DestroyRequest(BaseModel):
    public_id: Optional[str] = Field(None, description="Cloudinary public id")
    url: Optional[str] = Field(None, description="Delivery URL; the public id is derived from it")
