"""Session persistence.

A session is a small JSON record keyed by a lowercase hex id::

    {"id": "...", "created": 1700000000, "last_activity": 1700000042, "data": {...}}

Backends only know how to load, save, remove and enumerate records; the
merge, expiry and statistics rules live here so every backend applies them
the same way.
"""

from __future__ import annotations

import abc
import re
import time
from collections.abc import AsyncIterator, Callable
from typing import Any, ClassVar

from pydantic import BaseModel, Field, ValidationError

from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]{1,128}$")

DEFAULT_SESSION_TTL = 3600
DEFAULT_ACTIVE_WINDOW = 300


class SessionRecord(BaseModel):
    """The persisted shape of a session."""

    id: str
    created: int
    last_activity: int
    data: dict[str, Any] = Field(default_factory=dict)


class SessionStats(BaseModel):
    total: int
    active: int
    storage: str


def is_valid_session_id(session_id: str) -> bool:
    return bool(SESSION_ID_PATTERN.match(session_id))


class SessionStore(abc.ABC):
    """Key/record storage for sessions with TTL semantics.

    Writes are optimistic: two writers updating the same id race and the last
    write wins.
    """

    backend_name: ClassVar[str]

    def __init__(
        self,
        *,
        ttl: int = DEFAULT_SESSION_TTL,
        active_window: int = DEFAULT_ACTIVE_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.active_window = active_window
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    # Backend primitives

    @abc.abstractmethod
    async def _load(self, session_id: str) -> str | None:
        """Return the raw record text, or None when absent."""

    @abc.abstractmethod
    async def _save(self, session_id: str, raw: str) -> None:
        """Persist the raw record text, replacing any previous one."""

    @abc.abstractmethod
    async def _remove(self, session_id: str) -> bool:
        """Remove the record; True when something was removed."""

    @abc.abstractmethod
    def _iter_records(self) -> AsyncIterator[tuple[str, str]]:
        """Yield ``(session_id, raw)`` for every stored record."""

    async def aclose(self) -> None:
        """Release backend resources."""

    # Record operations

    def _decode(self, session_id: str, raw: str) -> SessionRecord | None:
        try:
            return SessionRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding unreadable session record {session_id}")
            return None

    async def _write(self, record: SessionRecord) -> None:
        await self._save(record.id, record.model_dump_json())

    async def create_session(self, session_id: str, data: dict[str, Any] | None = None) -> SessionRecord:
        """Create (or overwrite) a session record."""
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        now = self._now()
        record = SessionRecord(id=session_id, created=now, last_activity=now, data=dict(data or {}))
        await self._write(record)
        logger.debug(f"Session created: {session_id}")
        return record

    async def get_session(self, session_id: str) -> SessionRecord | None:
        if not is_valid_session_id(session_id):
            return None
        raw = await self._load(session_id)
        if raw is None:
            return None
        return self._decode(session_id, raw)

    async def update_session(self, session_id: str, data: dict[str, Any] | None = None) -> SessionRecord | None:
        """Merge ``data`` into the attribute bag and bump ``last_activity``.

        Returns the updated record, or None when the session does not exist.
        """
        record = await self.get_session(session_id)
        if record is None:
            return None
        record.data.update(data or {})
        record.last_activity = self._now()
        await self._write(record)
        return record

    async def delete_session(self, session_id: str) -> bool:
        if not is_valid_session_id(session_id):
            return False
        removed = await self._remove(session_id)
        if removed:
            logger.info(f"Session deleted: {session_id}")
        return removed

    async def session_exists(self, session_id: str) -> bool:
        return await self.get_session(session_id) is not None

    async def cleanup_expired(self) -> int:
        """Remove every session idle for longer than the TTL; returns how many."""
        cutoff = self._now() - self.ttl
        expired: list[str] = []
        async for session_id, raw in self._iter_records():
            record = self._decode(session_id, raw)
            if record is None or record.last_activity < cutoff:
                expired.append(session_id)

        for session_id in expired:
            await self._remove(session_id)
        if expired:
            logger.info(f"Removed {len(expired)} expired session(s)")
        return len(expired)

    async def stats(self) -> SessionStats:
        cutoff = self._now() - self.active_window
        total = 0
        active = 0
        async for session_id, raw in self._iter_records():
            total += 1
            record = self._decode(session_id, raw)
            if record is not None and record.last_activity > cutoff:
                active += 1
        return SessionStats(total=total, active=active, storage=self.backend_name)
