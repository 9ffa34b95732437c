from abc import ABC, abstractmethod
from typing import Any

from .models import OllamaChatMessage, StreamingResponse


class ModelBackend(ABC):
    """Abstract base class for the local model server client.

    This module hides the design decision of how the server is spoken to.
    Implementations must handle:
    - HTTP client setup and timeouts
    - Request/response format conversion
    - Translating transport failures into chital exceptions

    Supports async context manager protocol for proper resource cleanup:
        async with backend:
            title = await backend.send_single_message(model, messages)
        # Automatically cleaned up
    """

    @abstractmethod
    def stream_conversation(
        self,
        model: str,
        messages: list[OllamaChatMessage],
    ) -> StreamingResponse:
        """Open a streaming chat request.

        No I/O happens until the returned stream is first iterated.

        Args:
            model: Model identifier on the server
            messages: Full chronological history as role/content pairs

        Returns:
            StreamingResponse yielding text fragments as the server emits them

        Raises:
            TransportError: While iterating, if the connection fails or the
                stream is malformed or cut short
        """

    @abstractmethod
    async def send_single_message(
        self,
        model: str,
        messages: list[OllamaChatMessage],
    ) -> str:
        """Send a non-streaming chat request and return the whole reply.

        Raises:
            TransportError: If the server cannot be reached
            MalformedResponseError: If the reply has no message content
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the identifiers of the models installed on the server."""

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ModelBackend":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
