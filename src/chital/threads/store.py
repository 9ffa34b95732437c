"""Thread store.

Owns the live thread objects and keeps them in step with the persistence
backend. Every mutation publishes a ThreadEvent so that a view can
re-render without holding two-way bindings into the models.

In-memory changes are applied synchronously before the backend is awaited,
so an observer never sees a half-applied mutation.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from ..exceptions import ThreadNotFoundError
from .base import ThreadPersistence
from .models import (
    ChatMessage,
    ChatThread,
    Draft,
    Persisted,
    ThreadEvent,
    ThreadEventKind,
)

logger = logging.getLogger(__name__)

ThreadListener = Callable[[ThreadEvent], None]


def ensure_model_selected(
    thread: ChatThread,
    available_models: list[str],
    default_model_name: str = "",
) -> str | None:
    """Make sure the thread points at a model the server actually has.

    Keeps the current selection when it is still available; otherwise
    prefers ``default_model_name`` when that is available, then the first
    available model. With no models available the selection is cleared.

    Returns:
        The resolved model, or None if nothing could be resolved
    """
    if thread.selected_model and thread.selected_model in available_models:
        return thread.selected_model

    if default_model_name and default_model_name in available_models:
        thread.selected_model = default_model_name
    elif available_models:
        thread.selected_model = available_models[0]
    else:
        thread.selected_model = None
    return thread.selected_model


class ThreadStore:
    """Live threads plus their persistence backend."""

    def __init__(self, persistence: ThreadPersistence):
        self._persistence = persistence
        self._threads: dict[str, ChatThread] = {}
        self._listeners: list[ThreadListener] = []

    @property
    def persistence(self) -> ThreadPersistence:
        return self._persistence

    async def load(self) -> None:
        """Read every persisted thread from the backend."""
        for thread in await self._persistence.list_threads():
            self._threads[thread.id] = thread

    # -- observers --------------------------------------------------------

    def subscribe(self, listener: ThreadListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, kind: ThreadEventKind, thread: ChatThread, message_ids: list[str] | None = None) -> None:
        event = ThreadEvent(kind=kind, thread_id=thread.id, message_ids=message_ids or [])
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Thread listener failed on %s", kind.value)

    # -- threads ----------------------------------------------------------

    def new_draft(self) -> ChatThread:
        """Create a transient thread that no listing can see yet."""
        return ChatThread(identity=Draft())

    def list_threads(self) -> list[ChatThread]:
        """Persisted threads, newest first."""
        return sorted(self._threads.values(), key=lambda t: t.created_at, reverse=True)

    def get_thread(self, thread_id: str) -> ChatThread:
        try:
            return self._threads[thread_id]
        except KeyError:
            raise ThreadNotFoundError(f"No thread with id {thread_id}") from None

    async def promote_draft(self, thread: ChatThread) -> None:
        """Persist a draft thread. Does nothing for an already persisted one."""
        if not thread.is_draft:
            return

        thread.created_at = datetime.now()
        # Claim the identity before awaiting so a second call is a no-op
        thread.identity = Persisted(store_id=thread.id)
        self._threads[thread.id] = thread
        try:
            store_id = await self._persistence.insert_thread(thread)
        except Exception:
            thread.identity = Draft()
            self._threads.pop(thread.id, None)
            raise

        if store_id != thread.identity.store_id:
            thread.identity = Persisted(store_id=store_id)
        self._publish(ThreadEventKind.THREAD_CREATED, thread)

    def notify_updated(self, thread: ChatThread) -> None:
        """Publish a THREAD_UPDATED event for in-memory state such as ``is_thinking``."""
        self._publish(ThreadEventKind.THREAD_UPDATED, thread)

    async def update_thread(self, thread: ChatThread) -> None:
        """Persist thread metadata and notify observers."""
        self._publish(ThreadEventKind.THREAD_UPDATED, thread)
        if isinstance(thread.identity, Persisted):
            await self._persistence.update_thread(thread)

    async def set_title(self, thread: ChatThread, title: str) -> None:
        thread.title = title
        self._publish(ThreadEventKind.TITLE_CHANGED, thread)
        if isinstance(thread.identity, Persisted):
            await self._persistence.update_thread(thread)

    async def delete_thread(self, thread: ChatThread) -> None:
        """Delete a thread and, by cascade, its messages."""
        self._threads.pop(thread.id, None)
        identity = thread.identity
        thread.identity = Draft()
        self._publish(ThreadEventKind.THREAD_DELETED, thread)
        if isinstance(identity, Persisted):
            await self._persistence.delete_thread(identity.store_id)

    # -- messages ---------------------------------------------------------

    async def append(self, thread: ChatThread, message: ChatMessage) -> None:
        """Add a message to a persisted thread.

        Raises:
            ValueError: If the thread is still a draft
        """
        if not isinstance(thread.identity, Persisted):
            raise ValueError("Draft threads must be promoted before messages are added")

        thread.messages.append(message)
        self._publish(ThreadEventKind.MESSAGE_ADDED, thread, [message.id])
        await self._persistence.insert_message(thread.identity.store_id, message)

    def append_fragment(self, thread: ChatThread, message: ChatMessage, fragment: str) -> None:
        """Grow a streaming message in place.

        Only the live object changes; call ``save_message`` to persist.
        """
        message.text += fragment
        self._publish(ThreadEventKind.MESSAGE_UPDATED, thread, [message.id])

    async def save_message(self, thread: ChatThread, message: ChatMessage) -> None:
        if isinstance(thread.identity, Persisted):
            await self._persistence.update_message(thread.identity.store_id, message)

    async def truncate_from(self, thread: ChatThread, message: ChatMessage) -> list[ChatMessage]:
        """Remove ``message`` and everything chronologically after it.

        Returns:
            The removed messages, oldest first (empty if the message is not
            part of the thread)
        """
        ordered = thread.chronological_messages
        index = next((i for i, m in enumerate(ordered) if m.id == message.id), None)
        if index is None:
            return []

        removed = ordered[index:]
        removed_ids = [m.id for m in removed]
        previous = thread.messages
        thread.messages = [m for m in previous if m.id not in set(removed_ids)]
        self._publish(ThreadEventKind.MESSAGES_REMOVED, thread, removed_ids)

        if isinstance(thread.identity, Persisted):
            try:
                await self._persistence.delete_messages(thread.identity.store_id, removed_ids)
            except Exception:
                # Live thread must keep matching what the backend still holds
                thread.messages = previous
                self._publish(ThreadEventKind.MESSAGE_ADDED, thread, removed_ids)
                raise
        return removed
