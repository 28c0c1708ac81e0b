"""Session storage backends."""

from mcp_http.server.session_store.base import SessionRecord, SessionStats, SessionStore, is_valid_session_id
from mcp_http.server.session_store.file import FileSessionStore
from mcp_http.server.settings import Settings


def create_session_store(settings: Settings) -> SessionStore:
    """Build the backend named by ``settings.session_storage``."""
    options = {"ttl": settings.session_ttl, "active_window": settings.session_active_window}
    if settings.session_storage == "redis":
        from mcp_http.server.session_store.redis import RedisSessionStore

        return RedisSessionStore(settings.redis_url, **options)
    return FileSessionStore(settings.session_path, **options)


__all__ = [
    "FileSessionStore",
    "SessionRecord",
    "SessionStats",
    "SessionStore",
    "create_session_store",
    "is_valid_session_id",
]
