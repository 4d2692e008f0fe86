"""Deep health check: database round trip and a writable upload directory."""
import logging
import os
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


async def check_database(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unavailable: {e}")
        return False


def check_storage(directory: str) -> bool:
    """Write and remove a marker file in ``directory``. Blocking; run it in a thread."""
    marker = os.path.join(directory, f".health-{uuid.uuid4().hex}")
    try:
        os.makedirs(directory, exist_ok=True)
        with open(marker, "w") as fh:
            fh.write("ok")
        os.remove(marker)
        return True
    except OSError as e:
        logger.error(f"Health check: storage not writable ({directory}): {e}")
        return False


@router.get("")
async def health(db: AsyncSession = Depends(get_db)):
    db_ok = await check_database(db)
    storage_ok = await run_in_threadpool(check_storage, settings.UPLOAD_DIR)
    ok = db_ok and storage_ok
    body = {
        "ok": ok,
        "time": datetime.now(timezone.utc).isoformat(),
        "db": "up" if db_ok else "down",
        "storage": "up" if storage_ok else "down",
    }
    return JSONResponse(status_code=200 if ok else 503, content=body)
