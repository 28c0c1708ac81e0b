"""Filesystem session backend: one JSON file per session."""

from __future__ import annotations

import secrets
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import anyio

from mcp_http.server.exceptions import SessionStoreError
from mcp_http.server.session_store.base import SessionStore, is_valid_session_id
from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)


class FileSessionStore(SessionStore):
    """Stores each session as ``<path>/<id>.json``.

    Records are written to a temporary file in the same directory and then
    renamed over the target, so a reader sees either the old or the new
    record and never a partial one. There is no cross-process locking.
    """

    backend_name = "file"

    def __init__(self, path: str | Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._path = anyio.Path(path)

    def _record_path(self, session_id: str) -> anyio.Path:
        return self._path / f"{session_id}.json"

    async def _load(self, session_id: str) -> str | None:
        try:
            return await self._record_path(session_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.exception(f"Failed to read session {session_id}")
            raise SessionStoreError(f"Cannot read session {session_id}: {e}") from e

    async def _save(self, session_id: str, raw: str) -> None:
        target = self._record_path(session_id)
        tmp = self._path / f".{session_id}.{secrets.token_hex(4)}.tmp"
        try:
            await self._path.mkdir(parents=True, exist_ok=True)
            await tmp.write_text(raw, encoding="utf-8")
            await tmp.replace(target)
        except OSError as e:
            logger.exception(f"Failed to write session {session_id}")
            raise SessionStoreError(f"Cannot write session {session_id}: {e}") from e
        finally:
            if await tmp.exists():
                await tmp.unlink(missing_ok=True)

    async def _remove(self, session_id: str) -> bool:
        try:
            await self._record_path(session_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise SessionStoreError(f"Cannot delete session {session_id}: {e}") from e
        return True

    async def _iter_records(self) -> AsyncIterator[tuple[str, str]]:
        if not await self._path.is_dir():
            return
        async for entry in self._path.glob("*.json"):
            session_id = entry.stem
            if not is_valid_session_id(session_id):
                continue
            raw = await self._load(session_id)
            if raw is not None:
                yield session_id, raw
