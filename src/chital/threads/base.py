"""Abstract base class for thread persistence backends.

This module defines the storage contract the thread store relies on.
The abstraction hides:
- Storage format (rows, dicts, ...)
- Persistence mechanism (file, database, in-memory)
- Connection and transaction management
"""

from abc import ABC, abstractmethod

from .models import ChatMessage, ChatThread


class ThreadPersistence(ABC):
    """Abstract thread persistence backend.

    Only promoted (non-draft) threads are ever handed to a backend.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the backend gracefully."""

    @abstractmethod
    async def insert_thread(self, thread: ChatThread) -> str:
        """Store a new thread and return its store id."""

    @abstractmethod
    async def update_thread(self, thread: ChatThread) -> None:
        """Persist thread metadata (title, model, flags)."""

    @abstractmethod
    async def delete_thread(self, store_id: str) -> None:
        """Delete a thread together with all of its messages."""

    @abstractmethod
    async def insert_message(self, store_id: str, message: ChatMessage) -> None:
        """Store a new message under a thread."""

    @abstractmethod
    async def update_message(self, store_id: str, message: ChatMessage) -> None:
        """Persist the current text of a message."""

    @abstractmethod
    async def delete_messages(self, store_id: str, message_ids: list[str]) -> None:
        """Delete several messages in a single transaction."""

    @abstractmethod
    async def list_threads(self) -> list[ChatThread]:
        """Load every stored thread with its messages."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
