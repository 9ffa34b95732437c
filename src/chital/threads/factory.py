"""Selects the thread persistence backend.

Backends are looked up by name, case-insensitively; ``persistence_from_settings``
derives the backend options (the SQLite file) from ``Settings``.
"""

from typing import Any

from ..config import Settings
from .base import ThreadPersistence

BACKENDS = ("memory", "sqlite")


def create_thread_persistence(backend: str = "memory", **kwargs: Any) -> ThreadPersistence:
    """Create a thread persistence backend.

    Args:
        backend: Backend name, one of ``BACKENDS``
        **kwargs: Passed to the backend, e.g. ``path`` for sqlite

    Raises:
        ValueError: If the backend name is unknown
    """
    name = backend.strip().lower()
    if name == "memory":
        from .in_memory import InMemoryThreadPersistence
        return InMemoryThreadPersistence(**kwargs)
    if name == "sqlite":
        from .sqlite import SQLiteThreadPersistence
        return SQLiteThreadPersistence(**kwargs)

    raise ValueError(
        f"Unsupported thread backend: {backend}. Supported backends: {', '.join(BACKENDS)}"
    )


def persistence_from_settings(settings: Settings) -> ThreadPersistence:
    """Create the backend named by ``settings.db_backend``."""
    if settings.db_backend.strip().lower() == "sqlite":
        return create_thread_persistence("sqlite", path=settings.db_path)
    return create_thread_persistence(settings.db_backend)
