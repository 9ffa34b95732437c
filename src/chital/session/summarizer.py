"""Automatic thread titles.

After a thread's first completed exchange the whole history is sent back
to the model with a summarization instruction appended, and the reply
becomes the thread title. This runs as a detached task: it never reports
errors to the user and never touches the chat state beyond the title.
"""

import asyncio
import logging
import re

from ..config import DEFAULT_TITLE_SUMMARY_PROMPT
from ..exceptions import NoModelSelectedError
from ..llm.base import ModelBackend
from ..llm.models import OllamaChatMessage
from ..threads.models import ChatThread
from ..threads.store import ThreadStore
from .history import to_backend_messages

logger = logging.getLogger(__name__)

# Models that emit a <think>...</think> block before the actual answer
REASONING_MODELS = frozenset({"deepseek-r1:8b", "deepseek-r1:latest"})
REASONING_OPEN = "<think>"
REASONING_CLOSE = "</think>"

_REASONING_BLOCK = re.compile(
    re.escape(REASONING_OPEN) + r".*?" + re.escape(REASONING_CLOSE),
    re.DOTALL,
)


def strip_reasoning(text: str) -> str:
    """Remove every reasoning block, markers included, and trim whitespace."""
    return _REASONING_BLOCK.sub("", text).strip()


def postprocess_title(
    model: str,
    response: str,
    reasoning_models: frozenset[str] = REASONING_MODELS,
) -> str:
    """Clean a raw summary reply for use as a title.

    Only replies from known reasoning models are altered.
    """
    if model in reasoning_models:
        return strip_reasoning(response)
    return response


class TitleSummarizer:
    """Launches one-shot title generation tasks."""

    def __init__(
        self,
        store: ThreadStore,
        backend: ModelBackend,
        prompt: str = DEFAULT_TITLE_SUMMARY_PROMPT,
        reasoning_models: frozenset[str] = REASONING_MODELS,
    ) -> None:
        self._store = store
        self._backend = backend
        self._prompt = prompt
        self._reasoning_models = reasoning_models
        # Strong references keep detached tasks alive until they finish
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def launch(self, thread: ChatThread) -> "asyncio.Task[str | None]":
        """Start summarizing ``thread`` in the background.

        The request (history plus prompt) and the model are captured now;
        later edits to the thread do not affect the running task.
        """
        model = thread.selected_model
        messages = to_backend_messages(thread)
        messages.append(OllamaChatMessage(role="user", content=self._prompt))

        task = asyncio.create_task(self._summarize(thread, model, messages))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _summarize(
        self,
        thread: ChatThread,
        model: str | None,
        messages: list[OllamaChatMessage],
    ) -> str | None:
        try:
            if not model:
                raise NoModelSelectedError()
            response = await self._backend.send_single_message(model, messages)
            title = postprocess_title(model, response, self._reasoning_models)
            await self._store.set_title(thread, title)
        except Exception as e:
            logger.warning("Error summarizing thread %s: %s", thread.id, e)
            return None

        logger.debug("Thread %s titled %r", thread.id, title)
        return title

    async def wait(self) -> None:
        """Wait for every running summary task to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
