"""
Live coupon feed.

Recently published coupons are buffered in memory so that clients that
connect late still receive them (``cupones:recent``). A periodic check
drops entries that expired or whose coupon was deleted/deactivated and
broadcasts ``cupones:removed`` for each.
"""
import asyncio
import logging
import time
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models import Coupon
from marketplace.realtime.hub import ConnectionManager, Connection

logger = logging.getLogger(__name__)

MAX_BUFFER = 50
VERIFY_INTERVAL_SECONDS = 15


def now_ms() -> int:
    return int(time.time() * 1000)


class CouponFeed:
    """In-memory buffer of recently published coupons."""

    def __init__(self, hub: ConnectionManager, max_buffer: int = MAX_BUFFER):
        self.hub = hub
        self.max_buffer = max_buffer
        self.recent: List[dict] = []

    def fresh(self, at_ms: Optional[int] = None) -> List[dict]:
        at_ms = at_ms if at_ms is not None else now_ms()
        return [item for item in self.recent if (item.get("expiresAt") or 0) > at_ms]

    async def send_recent(self, conn: Connection, only_if_any: bool = False) -> None:
        at = now_ms()
        self.recent = self.fresh(at)
        if only_if_any and not self.recent:
            return
        await self.hub.send(conn, "cupones:recent", {"items": self.recent, "serverNow": at})

    async def publish(self, item: dict) -> None:
        """Buffer a newly published coupon (newest first) and broadcast it."""
        self.recent = self.fresh()
        self.recent.insert(0, item)
        del self.recent[self.max_buffer:]
        await self.hub.broadcast("cupones:new", item)

    async def remove(self, coupon_id: str) -> None:
        coupon_id = str(coupon_id or "")
        if not coupon_id:
            return
        self.recent = [item for item in self.recent if str(item.get("id")) != coupon_id]
        await self.hub.broadcast("cupones:removed", {"id": coupon_id})

    async def verify(self, db: AsyncSession) -> List[str]:
        """Purge expired or vanished coupons. Returns the removed ids."""
        if not self.recent:
            return []

        at = now_ms()
        expired = [item for item in self.recent if (item.get("expiresAt") or 0) <= at]
        still_valid = [item for item in self.recent if (item.get("expiresAt") or 0) > at]

        gone = []
        ids = [str(item["id"]) for item in still_valid if item.get("id")]
        if ids:
            result = await db.execute(
                select(Coupon.id).where(
                    Coupon.id.in_(ids),
                    Coupon.activa.is_(True),
                    Coupon.estado == "publicado",
                )
            )
            existing = set(result.scalars().all())
            gone = [item for item in still_valid if str(item.get("id")) not in existing]

        gone_ids = {str(item.get("id")) for item in gone}
        self.recent = [item for item in still_valid if str(item.get("id")) not in gone_ids]

        removed = [str(item.get("id")) for item in gone + expired]
        for coupon_id in removed:
            await self.hub.broadcast("cupones:removed", {"id": coupon_id})
        return removed

    async def run_verifier(self, session_factory, interval: float = VERIFY_INTERVAL_SECONDS) -> None:
        """Background loop started with the application."""
        while True:
            await asyncio.sleep(interval)
            try:
                async with session_factory() as db:
                    removed = await self.verify(db)
                if removed:
                    logger.debug(f"Coupon feed purged {len(removed)} item(s)")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Coupon feed verification failed")
