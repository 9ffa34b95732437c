from collections.abc import AsyncIterator
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class OllamaChatMessage(BaseModel):
    """One role/content pair sent to the model server."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(description="Role of the message sender")
    content: str = Field(description="Content of the message")


class StreamingResponse:
    """Async iterator over reply fragments that remembers what it yielded.

    If the underlying stream fails part way through, the fragments received
    before the failure stay available through ``received`` and ``text``.

    Usage:
        stream = backend.stream_conversation(model, messages)
        async for fragment in stream:
            print(fragment, end="")
        print(stream.text)
    """

    def __init__(self, async_iter: AsyncIterator[str]):
        """Initialize with an async iterator of text fragments.

        Args:
            async_iter: Async iterator yielding text fragments
        """
        self._iter = async_iter
        self._received: list[str] = []
        self._done = False

    @property
    def received(self) -> list[str]:
        """Fragments yielded so far, in arrival order."""
        return list(self._received)

    @property
    def text(self) -> str:
        """Concatenation of every fragment yielded so far."""
        return "".join(self._received)

    @property
    def done(self) -> bool:
        """True once the stream ended normally."""
        return self._done

    def __aiter__(self) -> "StreamingResponse":
        """Return self as async iterator."""
        return self

    async def __anext__(self) -> str:
        """Get next fragment from the underlying iterator."""
        try:
            fragment = await self._iter.__anext__()
        except StopAsyncIteration:
            self._done = True
            raise
        self._received.append(fragment)
        return fragment

    async def aclose(self) -> None:
        """Close the underlying generator, releasing its connection."""
        aclose = getattr(self._iter, "aclose", None)
        if aclose is not None:
            await aclose()
