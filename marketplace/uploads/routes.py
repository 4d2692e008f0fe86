"""Local image upload (mounted under /upload); files are served from /uploads."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from marketplace.auth.dependencies import get_current_user
from marketplace.config import settings
from marketplace.errors import BadRequestError, PayloadTooLargeError, UnsupportedMediaTypeError
from marketplace.middleware.rate_limit import limiter
from marketplace.models import User
from marketplace.uploads.images import ALLOWED_MIME_TYPES, process_image

logger = logging.getLogger(__name__)

router = APIRouter()

PUBLIC_PREFIX = "/uploads"


@router.post("/single")
@limiter.limit("30/minute")
async def upload_single(
    request: Request,
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
):
    """
    Store one image as webp (1600px full size plus a 320px thumbnail).

    Only jpeg, png and webp are accepted; svg and anything else is 415.
    """
    if file is None or not file.filename:
        raise BadRequestError("File required")
    if (file.content_type or "") not in ALLOWED_MIME_TYPES:
        raise UnsupportedMediaTypeError("File type not allowed (use JPG, PNG or WEBP)")

    data = await file.read(settings.UPLOAD_MAX_BYTES + 1)
    if len(data) > settings.UPLOAD_MAX_BYTES:
        raise PayloadTooLargeError("File too large", details={"maxBytes": settings.UPLOAD_MAX_BYTES})
    if not data:
        raise BadRequestError("File required")

    stored = await run_in_threadpool(
        process_image, data, file.filename, settings.UPLOAD_DIR, settings.UPLOAD_MAX_PIXELS
    )
    logger.info(f"User {current_user.id} uploaded {stored.full_name} ({stored.size} bytes)")
    return {
        "filename": file.filename,
        "url": f"{PUBLIC_PREFIX}/{stored.full_name}",
        "thumbUrl": f"{PUBLIC_PREFIX}/{stored.thumb_name}",
        "mimeType": "image/webp",
        "size": stored.size,
        "isImage": True,
        "width": stored.width,
        "height": stored.height,
    }
