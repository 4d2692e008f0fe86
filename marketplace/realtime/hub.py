"""
WebSocket connection hub.

Keeps track of live sockets and the rooms they joined. Every connection
joins ``user:<uid>``; connections that came with a refresh cookie also
join ``session:<jti>`` and ``family:<fam>`` so a single device session
can be logged out remotely.

Messages are JSON envelopes: ``{"event": "...", "data": {...}}``.
"""
import json
import logging
import secrets
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

FORCE_LOGOUT_EVENT = "session:forceLogout"


def user_room(uid: str) -> str:
    return f"user:{uid}"


def session_room(jti: str) -> str:
    return f"session:{jti}"


def family_room(fam: str) -> str:
    return f"family:{fam}"


@dataclass
class Connection:
    """A live WebSocket and what we know about its owner."""
    websocket: WebSocket
    uid: str
    jti: Optional[str] = None
    fam: Optional[str] = None
    id: str = field(default_factory=lambda: secrets.token_hex(8))
    rooms: Set[str] = field(default_factory=set)


def encode(event: str, data: Any = None, ack: Any = None) -> str:
    message = {"event": event, "data": data if data is not None else {}}
    if ack is not None:
        message["ack"] = ack
    return json.dumps(message, default=str)


class ConnectionManager:
    """Room based fan-out over native WebSockets."""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self.rooms: Dict[str, Set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def register(self, websocket: WebSocket, uid: str, jti: Optional[str] = None, fam: Optional[str] = None) -> Connection:
        """Track an accepted socket and join its default rooms."""
        conn = Connection(websocket=websocket, uid=uid, jti=jti, fam=fam)
        self.connections[conn.id] = conn
        self.join(conn, user_room(uid))
        if jti:
            self.join(conn, session_room(jti))
        if fam:
            self.join(conn, family_room(fam))
        logger.debug(f"WS connected: user={uid} conn={conn.id}")
        return conn

    def disconnect(self, conn: Connection) -> None:
        self.connections.pop(conn.id, None)
        for room in list(conn.rooms):
            members = self.rooms.get(room)
            if members is not None:
                members.discard(conn.id)
                if not members:
                    del self.rooms[room]
        conn.rooms.clear()
        logger.debug(f"WS disconnected: user={conn.uid} conn={conn.id}")

    def join(self, conn: Connection, room: str) -> None:
        self.rooms[room].add(conn.id)
        conn.rooms.add(room)

    def leave(self, conn: Connection, room: str) -> None:
        self.rooms.get(room, set()).discard(conn.id)
        conn.rooms.discard(room)

    def room_members(self, room: str) -> List[Connection]:
        return [self.connections[cid] for cid in self.rooms.get(room, ()) if cid in self.connections]

    def user_connection_count(self, uid: str) -> int:
        return len(self.rooms.get(user_room(uid), ()))

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, conn: Connection, event: str, data: Any = None, ack: Any = None) -> bool:
        """Send to one connection; a dead socket is dropped."""
        try:
            await conn.websocket.send_text(encode(event, data, ack))
            return True
        except Exception as e:
            logger.info(f"Dropping WS connection {conn.id} after send failure: {e}")
            self.disconnect(conn)
            return False

    async def _send_many(self, conns: Iterable[Connection], event: str, data: Any) -> int:
        sent = 0
        for conn in list(conns):
            if await self.send(conn, event, data):
                sent += 1
        return sent

    async def emit_to_room(self, room: str, event: str, data: Any = None) -> int:
        return await self._send_many(self.room_members(room), event, data)

    async def emit_to_user(self, uid: str, event: str, data: Any = None) -> int:
        return await self.emit_to_room(user_room(uid), event, data)

    async def emit_to_users(self, uids: Iterable[str], event: str, data: Any = None) -> int:
        sent = 0
        for uid in dict.fromkeys(str(u) for u in uids if u):
            sent += await self.emit_to_user(uid, event, data)
        return sent

    async def broadcast(self, event: str, data: Any = None, exclude: Optional[Connection] = None) -> int:
        targets = [c for c in self.connections.values() if exclude is None or c.id != exclude.id]
        return await self._send_many(targets, event, data)

    # ------------------------------------------------------------------
    # Forced logout
    # ------------------------------------------------------------------

    async def force_logout(
        self,
        uid: str,
        fam: Optional[str] = None,
        jti: Optional[str] = None,
        reason: str = "revoked",
    ) -> int:
        """
        Tell the devices behind a revoked session to log out.

        With ``jti``/``fam`` only that session (and its family) is targeted;
        with neither, every connection of the user is.
        """
        targets: Dict[str, Connection] = {}
        payloads: Dict[str, dict] = {}

        def add(conns: Iterable[Connection], payload: dict) -> None:
            for c in conns:
                if c.id not in targets:
                    targets[c.id] = c
                    payloads[c.id] = payload

        if jti:
            payload = {"scope": "session", "uid": uid, "jti": jti, "reason": reason}
            add(self.room_members(session_room(jti)), payload)
            add((c for c in self.connections.values() if c.jti == jti), payload)
        if fam:
            payload = {"scope": "family", "uid": uid, "fam": fam, "reason": reason}
            add(self.room_members(family_room(fam)), payload)
            add((c for c in self.connections.values() if c.fam == fam), payload)
        if not jti and not fam:
            add(self.room_members(user_room(uid)), {"scope": "user", "uid": uid, "reason": reason})

        sent = 0
        for cid, conn in targets.items():
            if await self.send(conn, FORCE_LOGOUT_EVENT, payloads[cid]):
                sent += 1
        if sent:
            logger.info(f"Force logout sent to {sent} connection(s) of user {uid} ({reason})")
        return sent


# Global instance
manager = ConnectionManager()
