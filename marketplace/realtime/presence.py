"""Online / away / offline presence broadcast over the hub."""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict

from marketplace.realtime.hub import ConnectionManager

logger = logging.getLogger(__name__)

AWAY_AFTER_SECONDS = 120


class PresenceTracker:
    """Per-user connection counts plus an away timer re-armed on activity."""

    def __init__(self, hub: ConnectionManager, away_after: float = AWAY_AFTER_SECONDS):
        self.hub = hub
        self.away_after = away_after
        self.counts: Dict[str, int] = {}
        self.status: Dict[str, dict] = {}
        self._away_tasks: Dict[str, asyncio.Task] = {}

    async def _broadcast(self, uid: str, status: str) -> None:
        self.status[uid] = {"status": status, "lastSeen": datetime.now(timezone.utc).isoformat()}
        await self.hub.broadcast("user:status", {"userId": uid, "status": status, "at": int(time.time() * 1000)})

    def _cancel_away(self, uid: str) -> None:
        task = self._away_tasks.pop(uid, None)
        if task is not None and not task.done():
            task.cancel()

    def _schedule_away(self, uid: str) -> None:
        self._cancel_away(uid)
        self._away_tasks[uid] = asyncio.create_task(self._mark_away(uid))

    async def _mark_away(self, uid: str) -> None:
        try:
            await asyncio.sleep(self.away_after)
        except asyncio.CancelledError:
            return
        if self.counts.get(uid, 0) > 0:
            await self._broadcast(uid, "away")

    async def connected(self, uid: str) -> None:
        count = self.counts.get(uid, 0) + 1
        self.counts[uid] = count
        if count == 1:
            await self._broadcast(uid, "online")
        self._schedule_away(uid)

    async def activity(self, uid: str) -> None:
        await self._broadcast(uid, "online")
        self._schedule_away(uid)

    async def disconnected(self, uid: str) -> None:
        count = max(0, self.counts.get(uid, 1) - 1)
        self.counts[uid] = count
        if count == 0:
            self.counts.pop(uid, None)
            self._cancel_away(uid)
            await self._broadcast(uid, "offline")
            # Offline is the default; only connected users keep an entry
            self.status.pop(uid, None)

    def snapshot(self) -> Dict[str, str]:
        """Status of every connected user; anyone missing is offline."""
        return {uid: info["status"] for uid, info in self.status.items()}

    def get(self, uid: str) -> str:
        info = self.status.get(uid)
        return info["status"] if info else "offline"
