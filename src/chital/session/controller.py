"""Per-thread session controller.

Drives one streaming exchange at a time for a thread:

    IDLE -> SENDING -> STREAMING -> FINALIZING -> IDLE
                 \\          \\
                  +-> ERROR -+-> IDLE

All thread mutations go through the ThreadStore so observers are notified.
Failures are classified into a single user-facing message; no raw
exception escapes ``submit`` or ``retry``.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from ..config import Settings
from ..exceptions import NoModelSelectedError, TransportError, describe_error
from ..llm.base import ModelBackend
from ..llm.models import StreamingResponse
from ..threads.models import ChatMessage, ChatThread
from ..threads.store import ThreadStore, ensure_model_selected
from .history import to_backend_messages
from .summarizer import TitleSummarizer

logger = logging.getLogger(__name__)

ErrorListener = Callable[[ChatThread, str], None]


class SessionState(str, Enum):
    """Where a thread is in its send/stream cycle."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    ERROR = "error"


class SessionController:
    """Owns the exchange state machine for one thread."""

    def __init__(
        self,
        thread: ChatThread,
        store: ThreadStore,
        backend: ModelBackend,
        summarizer: TitleSummarizer,
        available_models: list[str] | None = None,
        default_model_name: str = "",
    ) -> None:
        self._thread = thread
        self._store = store
        self._backend = backend
        self._summarizer = summarizer
        self.available_models: list[str] = list(available_models or [])
        self.default_model_name = default_model_name
        self.state = SessionState.IDLE
        self.last_error: str | None = None
        self.summary_task: asyncio.Task | None = None
        self._cancel_requested = False
        self._error_listeners: list[ErrorListener] = []

    @property
    def thread(self) -> ChatThread:
        return self._thread

    @property
    def is_busy(self) -> bool:
        return self._thread.is_thinking

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        """Register a callback receiving user-facing error messages."""
        self._error_listeners.append(listener)
        return lambda: self._error_listeners.remove(listener)

    def ensure_model_selected(self) -> str | None:
        return ensure_model_selected(self._thread, self.available_models, self.default_model_name)

    def cancel(self) -> None:
        """Stop consuming the current stream after the next fragment.

        Text received so far is kept. Does nothing when idle.
        """
        if self._thread.is_thinking:
            self._cancel_requested = True

    async def submit(self, text: str) -> bool:
        """Send user input and stream the assistant reply.

        Returns:
            False if the input was rejected (empty, or an exchange is
            already running for this thread), True otherwise. Failures
            after acceptance are reported through ``last_error``.
        """
        if not text:
            return False
        if not self._claim():
            logger.info("Rejected submission to busy thread %s", self._thread.id)
            return False

        try:
            if self._thread.is_draft:
                await self._store.promote_draft(self._thread)
            await self._store.append(self._thread, ChatMessage(text=text, is_user=True))
        except Exception as e:
            await self._fail(e)
            return True

        await self._exchange()
        return True

    async def retry(self, message: ChatMessage) -> bool:
        """Discard ``message`` and everything after it, then regenerate.

        The remaining history is resent as it stands. When nothing is left
        to answer (the history no longer ends with user input) the thread
        simply returns to idle.

        Returns:
            False if the message is not in the thread or the thread is busy
        """
        if self._thread.find_message(message.id) is None:
            return False
        if not self._claim():
            logger.info("Rejected retry on busy thread %s", self._thread.id)
            return False

        try:
            await self._store.truncate_from(self._thread, message)
            remaining = self._thread.chronological_messages
            if not remaining or not remaining[-1].is_user:
                logger.info("Nothing to resend for thread %s after retry", self._thread.id)
                self._thread.is_thinking = False
                await self._store.update_thread(self._thread)
                return True
        except Exception as e:
            await self._fail(e)
            return True

        await self._exchange()
        return True

    def _claim(self) -> bool:
        # No await between the check and the set: single flight per thread
        if self._thread.is_thinking:
            return False
        self._thread.is_thinking = True
        self._cancel_requested = False
        self.last_error = None
        self._store.notify_updated(self._thread)
        return True

    async def _exchange(self) -> None:
        thread = self._thread
        assistant: ChatMessage | None = None
        stream: StreamingResponse | None = None

        try:
            self.state = SessionState.SENDING
            model = self.ensure_model_selected()
            if not model:
                raise NoModelSelectedError()

            history = to_backend_messages(thread)
            stream = self._backend.stream_conversation(model, history)

            assistant = ChatMessage(text="", is_user=False)
            await self._store.append(thread, assistant)

            self.state = SessionState.STREAMING
            async for fragment in stream:
                self._store.append_fragment(thread, assistant, fragment)
                if self._cancel_requested:
                    break

            if self._cancel_requested:
                await stream.aclose()
                await self._finish_cancelled(assistant)
                return

            await self._finalize(assistant)
        except asyncio.CancelledError:
            thread.is_thinking = False
            self._cancel_requested = False
            self.state = SessionState.IDLE
            if assistant is not None:
                try:
                    await asyncio.shield(self._store.save_message(thread, assistant))
                except Exception:
                    logger.exception("Could not save partial reply in thread %s", thread.id)
            self._store.notify_updated(thread)
            raise
        except Exception as e:
            await self._fail(e, assistant)

    async def _finalize(self, assistant: ChatMessage) -> None:
        thread = self._thread
        self.state = SessionState.FINALIZING
        thread.is_thinking = False
        if not thread.has_received_first_message:
            thread.has_received_first_message = True
            self.summary_task = self._summarizer.launch(thread)

        await self._store.save_message(thread, assistant)
        await self._store.update_thread(thread)
        self.state = SessionState.IDLE

    async def _finish_cancelled(self, assistant: ChatMessage) -> None:
        logger.info("Exchange cancelled for thread %s", self._thread.id)
        self.state = SessionState.FINALIZING
        self._thread.is_thinking = False
        self._cancel_requested = False
        await self._store.save_message(self._thread, assistant)
        await self._store.update_thread(self._thread)
        self.state = SessionState.IDLE

    async def _fail(self, error: Exception, assistant: ChatMessage | None = None) -> None:
        self.state = SessionState.ERROR
        self._thread.is_thinking = False
        self._cancel_requested = False
        message = describe_error(error)
        self.last_error = message

        if isinstance(error, (TransportError, NoModelSelectedError)):
            logger.warning("Exchange failed for thread %s: %s", self._thread.id, error)
        else:
            logger.exception("Unexpected failure in thread %s", self._thread.id)

        if assistant is not None:
            # Partial replies stay visible and are kept
            try:
                await self._store.save_message(self._thread, assistant)
            except Exception:
                logger.exception("Could not save partial reply in thread %s", self._thread.id)

        try:
            await self._store.update_thread(self._thread)
        except Exception:
            logger.exception("Could not update thread %s after failure", self._thread.id)

        for listener in list(self._error_listeners):
            try:
                listener(self._thread, message)
            except Exception:
                logger.exception("Error listener failed")

        self.state = SessionState.IDLE


class SessionRegistry:
    """Hands out one controller per thread and shares the model list."""

    def __init__(
        self,
        store: ThreadStore,
        backend: ModelBackend,
        settings: Settings | None = None,
        available_models: list[str] | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._settings = settings or Settings()
        self._available_models: list[str] = list(available_models or [])
        self._controllers: dict[str, SessionController] = {}
        self._summarizer = TitleSummarizer(store, backend, self._settings.title_summary_prompt)

    @property
    def summarizer(self) -> TitleSummarizer:
        return self._summarizer

    @property
    def available_models(self) -> list[str]:
        return list(self._available_models)

    async def refresh_models(self) -> list[str]:
        """Ask the server which models are installed.

        On a transport failure the previous list is kept.
        """
        try:
            models = await self._backend.list_models()
        except TransportError as e:
            logger.warning("Could not list models: %s", e)
            return self.available_models

        self._available_models = list(models)
        for controller in self._controllers.values():
            controller.available_models = list(models)
        return self.available_models

    def controller_for(self, thread: ChatThread) -> SessionController:
        """Return the controller for ``thread``, creating it on first use.

        Opening a thread resolves its model against the current model list,
        once that list is known.
        """
        controller = self._controllers.get(thread.id)
        if controller is None:
            controller = SessionController(
                thread,
                self._store,
                self._backend,
                self._summarizer,
                available_models=self._available_models,
                default_model_name=self._settings.default_model_name,
            )
            self._controllers[thread.id] = controller
        if self._available_models:
            controller.ensure_model_selected()
        return controller

    def discard(self, thread: ChatThread) -> None:
        """Forget the controller of a deleted thread."""
        self._controllers.pop(thread.id, None)
