"""In-memory thread persistence backend.

Simple dict-based storage for session-only use.
Data is lost when the application exits.
"""

from .base import ThreadPersistence
from .models import ChatMessage, ChatThread, Persisted


class InMemoryThreadPersistence(ThreadPersistence):
    """In-memory thread persistence (session-only).

    Stores copies so that later mutations of live objects are only visible
    once they are explicitly saved, as with a real database.
    Suitable for single-session use or testing.
    """

    def __init__(self) -> None:
        self._threads: dict[str, ChatThread] = {}
        self._messages: dict[str, dict[str, ChatMessage]] = {}

    async def connect(self) -> None:
        """Initialize memory (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close memory (no-op for in-memory)."""
        pass

    async def insert_thread(self, thread: ChatThread) -> str:
        store_id = thread.id
        self._threads[store_id] = thread.model_copy(update={
            "messages": [],
            "is_thinking": False,
            "identity": Persisted(store_id=store_id),
        })
        self._messages.setdefault(store_id, {})
        return store_id

    async def update_thread(self, thread: ChatThread) -> None:
        if not isinstance(thread.identity, Persisted):
            return
        store_id = thread.identity.store_id
        if store_id in self._threads:
            self._threads[store_id] = thread.model_copy(update={"messages": [], "is_thinking": False})

    async def delete_thread(self, store_id: str) -> None:
        self._threads.pop(store_id, None)
        self._messages.pop(store_id, None)

    async def insert_message(self, store_id: str, message: ChatMessage) -> None:
        self._messages.setdefault(store_id, {})[message.id] = message.model_copy()

    async def update_message(self, store_id: str, message: ChatMessage) -> None:
        messages = self._messages.get(store_id, {})
        if message.id in messages:
            messages[message.id] = message.model_copy()

    async def delete_messages(self, store_id: str, message_ids: list[str]) -> None:
        messages = self._messages.get(store_id, {})
        for message_id in message_ids:
            messages.pop(message_id, None)

    async def list_threads(self) -> list[ChatThread]:
        threads = []
        for store_id, thread in self._threads.items():
            messages = [m.model_copy() for m in self._messages.get(store_id, {}).values()]
            threads.append(thread.model_copy(update={"messages": messages}))
        return threads

    @property
    def backend_type(self) -> str:
        return "memory"
