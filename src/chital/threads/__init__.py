"""Conversation thread storage for chital.

Provides the thread/message models, the persistence backends and the
observable thread store the session layer mutates.
"""

from .base import ThreadPersistence
from .factory import create_thread_persistence, persistence_from_settings
from .models import (
    ChatMessage,
    ChatThread,
    Draft,
    Persisted,
    ThreadEvent,
    ThreadEventKind,
)
from .store import ThreadStore, ensure_model_selected

__all__ = [
    "ChatMessage",
    "ChatThread",
    "Draft",
    "Persisted",
    "ThreadEvent",
    "ThreadEventKind",
    "ThreadPersistence",
    "ThreadStore",
    "create_thread_persistence",
    "ensure_model_selected",
    "persistence_from_settings",
]
