"""Live-update session registry.

Maps a user to their single active connection. The in-memory store serves
a single process; the Redis store shares the registry across workers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Protocol

from hostelpal.core.redis_client import get_async_redis_client

logger = logging.getLogger(__name__)

SESSIONS_KEY = "hostelpal:ws:sessions"
CONNECTIONS_KEY = "hostelpal:ws:connections"


@dataclass(frozen=True)
class SessionEntry:
    connection_id: str
    user_id: str
    role: str


EntryVisitor = Callable[[SessionEntry], Awaitable[None]]


class SessionStore(Protocol):
    async def register(self, user_id: str, entry: SessionEntry) -> SessionEntry | None:
        """Store the entry, returning the one it replaced."""
        ...

    async def unregister(self, connection_id: str) -> SessionEntry | None:
        """Drop the entry if it is still the user's current connection."""
        ...

    async def lookup(self, user_id: str) -> SessionEntry | None: ...

    async def for_each(self, visit: EntryVisitor) -> None: ...


class InMemorySessionStore:
    """Process-local registry."""

    def __init__(self) -> None:
        self._by_user: dict[str, SessionEntry] = {}

    async def register(self, user_id: str, entry: SessionEntry) -> SessionEntry | None:
        previous = self._by_user.get(user_id)
        self._by_user[user_id] = entry
        return previous

    async def unregister(self, connection_id: str) -> SessionEntry | None:
        for user_id, entry in list(self._by_user.items()):
            if entry.connection_id == connection_id:
                del self._by_user[user_id]
                return entry
        return None

    async def lookup(self, user_id: str) -> SessionEntry | None:
        return self._by_user.get(user_id)

    async def for_each(self, visit: EntryVisitor) -> None:
        for entry in list(self._by_user.values()):
            await visit(entry)


class RedisSessionStore:
    """Registry shared through two Redis hashes (user -> entry, connection -> user)."""

    def __init__(self, client) -> None:
        self._client = client

    async def register(self, user_id: str, entry: SessionEntry) -> SessionEntry | None:
        raw = await self._client.hget(SESSIONS_KEY, user_id)
        previous = _decode(raw)
        pipe = self._client.pipeline()
        if previous is not None:
            pipe.hdel(CONNECTIONS_KEY, previous.connection_id)
        pipe.hset(SESSIONS_KEY, user_id, json.dumps(asdict(entry)))
        pipe.hset(CONNECTIONS_KEY, entry.connection_id, user_id)
        await pipe.execute()
        return previous

    async def unregister(self, connection_id: str) -> SessionEntry | None:
        user_id = await self._client.hget(CONNECTIONS_KEY, connection_id)
        await self._client.hdel(CONNECTIONS_KEY, connection_id)
        if not user_id:
            return None
        current = _decode(await self._client.hget(SESSIONS_KEY, user_id))
        if current is None or current.connection_id != connection_id:
            return None
        await self._client.hdel(SESSIONS_KEY, user_id)
        return current

    async def lookup(self, user_id: str) -> SessionEntry | None:
        return _decode(await self._client.hget(SESSIONS_KEY, user_id))

    async def for_each(self, visit: EntryVisitor) -> None:
        values = await self._client.hvals(SESSIONS_KEY)
        for raw in values:
            entry = _decode(raw)
            if entry is not None:
                await visit(entry)


def _decode(raw: str | None) -> SessionEntry | None:
    if not raw:
        return None
    try:
        return SessionEntry(**json.loads(raw))
    except (TypeError, ValueError):
        logger.warning("Dropping malformed session entry")
        return None


def build_session_store() -> SessionStore:
    client = get_async_redis_client()
    if client is None:
        return InMemorySessionStore()
    return RedisSessionStore(client)
