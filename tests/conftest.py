"""Pytest configuration and shared fixtures."""
import asyncio
from collections.abc import AsyncIterator

import pytest

from chital.config import Settings
from chital.llm import ModelBackend, OllamaChatMessage, StreamingResponse
from chital.session import SessionRegistry
from chital.threads import ThreadStore, create_thread_persistence


class FakeBackend(ModelBackend):
    """Scripted stand-in for the Ollama server.

    ``fragments`` are streamed in order; if ``stream_error`` is set it is
    raised after ``fail_after`` fragments. ``gate`` (an asyncio.Event) can
    hold the stream open, from fragment ``gate_after`` on, until a test
    releases it.
    """

    def __init__(
        self,
        fragments: list[str] | None = None,
        reply: str = "A Title",
        models: list[str] | None = None,
    ) -> None:
        self.fragments = fragments if fragments is not None else ["Hi", " there", "!"]
        self.reply = reply
        self.models = models if models is not None else ["llama3:latest"]
        self.stream_error: Exception | None = None
        self.fail_after = 0
        self.single_error: Exception | None = None
        self.models_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.gate_after = 0
        self.stream_calls: list[tuple[str, list[OllamaChatMessage]]] = []
        self.single_calls: list[tuple[str, list[OllamaChatMessage]]] = []
        self.closed = False

    def stream_conversation(self, model, messages) -> StreamingResponse:
        self.stream_calls.append((model, list(messages)))
        return StreamingResponse(self._generate())

    async def _generate(self) -> AsyncIterator[str]:
        for index, fragment in enumerate(self.fragments):
            if self.stream_error is not None and index == self.fail_after:
                raise self.stream_error
            if self.gate is not None and index >= self.gate_after:
                await self.gate.wait()
            await asyncio.sleep(0)
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error

    async def send_single_message(self, model, messages) -> str:
        self.single_calls.append((model, list(messages)))
        await asyncio.sleep(0)
        if self.single_error is not None:
            raise self.single_error
        return self.reply

    async def list_models(self) -> list[str]:
        if self.models_error is not None:
            raise self.models_error
        return list(self.models)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def backend():
    """Return a scripted backend with one installed model."""
    return FakeBackend()


@pytest.fixture
def settings():
    """Return settings that never touch the user's home directory."""
    return Settings(db_backend="memory", title_summary_prompt="Title please")


@pytest.fixture
async def store():
    """Return a thread store on the in-memory backend."""
    persistence = create_thread_persistence("memory")
    await persistence.connect()
    store = ThreadStore(persistence)
    await store.load()
    yield store
    await persistence.disconnect()


@pytest.fixture
async def registry(store, backend, settings):
    """Return a session registry whose model list has been fetched."""
    registry = SessionRegistry(store, backend, settings)
    await registry.refresh_models()
    return registry
