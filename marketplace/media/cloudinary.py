"""
Cloudinary helpers - signed direct uploads, thumbnails and asset removal.

Uploads go straight from the browser to Cloudinary; the API only signs
the parameters. Deletions go through the Cloudinary SDK.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
from fastapi.concurrency import run_in_threadpool

from marketplace.config import settings

logger = logging.getLogger(__name__)

CLOUDINARY_API = "https://api.cloudinary.com/v1_1"
THUMB_TRANSFORMATION = "w_400,h_400,c_fill,q_auto,f_auto"
UPLOAD_TRANSFORMATION = "c_limit,w_1600,h_1600,q_auto:good,f_auto"

AVATAR_FOLDER_RE = re.compile(r"/users/[^/]+/avatar/?$")
VERSION_RE = re.compile(r"/v\d+/")
EXTENSION_RE = re.compile(r"\.[a-z0-9]+$", re.IGNORECASE)


def thumbnail_url(url: Optional[str]) -> str:
    """Insert the thumbnail transformation right after ``/upload/``."""
    if not url:
        return ""
    parts = str(url).split("/upload/", 1)
    if len(parts) < 2:
        return url
    return f"{parts[0]}/upload/{THUMB_TRANSFORMATION}/{parts[1]}"


def public_id_from_url(url: Optional[str]) -> Optional[str]:
    """Recover the public id from a delivery URL (version and extension stripped)."""
    if not url:
        return None
    parts = str(url).split("/upload/", 1)
    if len(parts) < 2:
        return None
    tail = parts[1]
    match = VERSION_RE.search("/" + tail)
    if match:
        tail = ("/" + tail)[match.end():]
    else:
        slash = tail.find("/")
        if slash >= 0:
            tail = tail[slash + 1:]
    tail = EXTENSION_RE.sub("", tail)
    return unquote(tail) or None


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """sha1 of the sorted ``k=v&...`` string followed by the API secret."""
    return cloudinary.utils.api_sign_request(dict(params), api_secret)


def _env_label(env: Optional[str]) -> str:
    return env or ("prod" if settings.is_production else "dev")


def build_upload_signature(
    uid: Optional[str],
    folder: Optional[str] = None,
    env: Optional[str] = None,
    tags: Any = None,
    context: Optional[Dict[str, Any]] = None,
    public_id: Optional[str] = None,
    overwrite: bool = False,
    invalidate: bool = False,
    chat_id: Optional[str] = None,
    message_id: Optional[str] = None,
    negocio_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Build signed fields for a direct browser upload."""
    now = now or datetime.now(timezone.utc)
    yyyy, mm = now.year, f"{now.month:02d}"
    env_label = _env_label(env)
    app = settings.APP_NAME

    if folder and AVATAR_FOLDER_RE.search(str(folder)):
        public_id = "avatar"
        overwrite = True
        invalidate = True

    if chat_id:
        folder = f"{app}/{env_label}/chats/{chat_id}/images/{yyyy}/{mm}"
        if message_id:
            public_id = str(message_id)
        if not tags:
            tags = [t for t in (f"app:{app}", f"env:{env_label}", "cat:Chat", f"chat:{chat_id}",
                                f"user:{uid}" if uid else None) if t]
        if not context:
            context = {"chat": chat_id}
            if message_id:
                context["msg"] = message_id
            if uid:
                context["sender"] = uid

    if negocio_id:
        folder = f"{app}/{env_label}/negocios/{negocio_id}/images/{yyyy}/{mm}"
        if not tags:
            tags = [t for t in (f"app:{app}", f"env:{env_label}", "cat:Negocio", f"negocio:{negocio_id}",
                                f"user:{uid}" if uid else None) if t]
        if not context:
            context = {"negocio": negocio_id}
            if uid:
                context["owner"] = uid

    params: Dict[str, Any] = {"timestamp": int(now.timestamp())}
    if folder:
        params["folder"] = folder
    if public_id:
        params["public_id"] = public_id
    if overwrite:
        params["overwrite"] = "true"
    if invalidate:
        params["invalidate"] = "true"
    if tags:
        params["tags"] = ",".join(tags) if isinstance(tags, (list, tuple)) else str(tags)
    if context:
        params["context"] = "|".join(f"{k}={v}" for k, v in context.items())
    params["transformation"] = UPLOAD_TRANSFORMATION

    signature = sign_params(params, settings.CLOUDINARY_API_SECRET)
    cloud_name = settings.CLOUDINARY_CLOUD_NAME
    api_key = settings.CLOUDINARY_API_KEY

    return {
        "uploadUrl": f"{CLOUDINARY_API}/{cloud_name}/auto/upload",
        "fields": {"api_key": api_key, "signature": signature, **params},
        "cloudName": cloud_name,
        "apiKey": api_key,
        "signature": signature,
        **params,
    }


class CloudinaryClient:
    """Cloudinary admin operations (destroy only) for one set of credentials."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret

    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    async def destroy(self, public_id: str, resource_type: str = "image") -> dict:
        """Delete an asset. Raises cloudinary.exceptions.Error on failure."""
        return await run_in_threadpool(
            cloudinary.uploader.destroy,
            public_id,
            resource_type=resource_type,
            invalidate=True,
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
        )

    async def destroy_many(self, public_ids: List[str]) -> int:
        """Best-effort delete; failures are logged. Returns how many succeeded."""
        if not self.is_configured():
            return 0
        done = 0
        for public_id in [p for p in public_ids if p]:
            try:
                await self.destroy(public_id)
                done += 1
            except cloudinary.exceptions.Error as e:
                logger.warning(f"Cloudinary destroy failed for {public_id}: {e}")
        return done


def get_cloudinary() -> CloudinaryClient:
    return CloudinaryClient(
        settings.CLOUDINARY_CLOUD_NAME,
        settings.CLOUDINARY_API_KEY,
        settings.CLOUDINARY_API_SECRET,
    )
