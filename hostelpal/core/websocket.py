"""
WebSocket connection manager for live ticket updates.

The session store decides which connection is current for a user; this
process keeps the sockets it accepted. Delivery is best-effort: a failed
send drops the connection and is never raised to the caller.
"""

from typing import Dict, Iterable
import asyncio
import json
import logging

from fastapi import WebSocket

from hostelpal.core.session_store import SessionEntry, SessionStore, build_session_store

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Maps users to their single live connection."""

    def __init__(self, store: SessionStore | None = None):
        self.store: SessionStore = store or build_session_store()
        # connection_id -> socket accepted by this process
        self._sockets: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def register(
        self, connection_id: str, user_id: str, websocket: WebSocket, role: str
    ) -> None:
        """Register an accepted connection, replacing any earlier one for the user."""
        entry = SessionEntry(connection_id=connection_id, user_id=str(user_id), role=role)
        async with self._lock:
            previous = await self.store.register(str(user_id), entry)
            if previous is not None and previous.connection_id != connection_id:
                self._sockets.pop(previous.connection_id, None)
            self._sockets[connection_id] = websocket

    async def unregister(self, connection_id: str) -> None:
        """Remove a connection. A replaced connection leaves the newer one intact."""
        async with self._lock:
            self._sockets.pop(connection_id, None)
            await self.store.unregister(connection_id)

    async def send_to_user(self, user_id, event: dict) -> bool:
        """Send an event to the user's current connection, if any."""
        entry = await self.store.lookup(str(user_id))
        if entry is None:
            return False
        return await self._send(entry, event)

    async def broadcast_to_role(self, role: str | Iterable[str], event: dict) -> int:
        """Send an event to every connected user holding the role(s)."""
        roles = {role} if isinstance(role, str) else {str(r) for r in role}
        targets: list[SessionEntry] = []

        async def collect(entry: SessionEntry) -> None:
            if entry.role in roles:
                targets.append(entry)

        await self.store.for_each(collect)

        delivered = 0
        for entry in targets:
            if await self._send(entry, event):
                delivered += 1
        return delivered

    async def _send(self, entry: SessionEntry, event: dict) -> bool:
        async with self._lock:
            ws = self._sockets.get(entry.connection_id)
        if ws is None:
            # Held by another worker or already gone
            return False

        try:
            await ws.send_text(json.dumps(event, default=str))
        except Exception:
            # Connection closed or errored
            logger.info("Dropping dead connection for user %s", entry.user_id)
            await self.unregister(entry.connection_id)
            return False
        return True

    def get_total_connections(self) -> int:
        """Get total number of sockets held by this process."""
        return len(self._sockets)


# Singleton instance
manager = ConnectionManager()
