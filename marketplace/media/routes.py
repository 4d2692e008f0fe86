"""Media routes - Cloudinary signing and removal."""
import logging

import cloudinary.exceptions
from fastapi import APIRouter, Depends

from marketplace.auth.dependencies import get_current_user
from marketplace.errors import BadRequestError, UpstreamError
from marketplace.media import schemas
from marketplace.media.cloudinary import build_upload_signature, get_cloudinary, public_id_from_url
from marketplace.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sign")
async def sign_upload(data: schemas.SignUploadRequest, current_user: User = Depends(get_current_user)):
    """Return signed fields for a direct upload to Cloudinary."""
    return build_upload_signature(
        uid=current_user.id,
        folder=data.folder,
        env=data.env,
        tags=data.tags,
        context=data.context,
        public_id=data.public_id,
        overwrite=data.overwrite,
        invalidate=data.invalidate,
        chat_id=data.chatId,
        message_id=data.messageId,
        negocio_id=data.negocioId,
    )


@router.post("/destroy")
async def destroy_asset(data: schemas.DestroyRequest, current_user: User = Depends(get_current_user)):
    """Delete an asset by public id or URL."""
    public_id = data.public_id or public_id_from_url(data.url)
    if not public_id:
        raise BadRequestError("public_id or url is required")

    try:
        result = await get_cloudinary().destroy(public_id)
    except cloudinary.exceptions.Error as e:
        logger.error(f"Cloudinary destroy failed for {public_id}: {e}")
        raise UpstreamError("Could not delete the asset")

    return {"ok": True, "public_id": public_id, "result": result}
