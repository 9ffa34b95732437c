from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ...exceptions import MalformedResponseError, TransportError, TransportKind
from ..base import ModelBackend
from ..models import OllamaChatMessage, StreamingResponse


def _translate_transport_error(error: Exception) -> TransportError:
    """Map openai/httpx failures onto a TransportError of the right kind."""
    if isinstance(error, (openai.APITimeoutError, httpx.TimeoutException)):
        return TransportError(str(error) or "Request timed out", TransportKind.TIMEOUT)
    if isinstance(error, (openai.APIConnectionError, httpx.ConnectError)):
        return TransportError(str(error) or "Connection error", TransportKind.CONNECTION_REFUSED)
    return TransportError(str(error) or type(error).__name__, TransportKind.OTHER)


class OllamaBackend(ModelBackend):
    """Client for a local Ollama server through its OpenAI-compatible API.

    Hidden design decisions:
    - API client initialization (via OpenAI SDK, pointed at ``{host}/v1``)
    - Message format conversion
    - Timeout handling (explicit, no silent retries)
    - Translation of SDK and httpx errors into chital exceptions
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        timeout: float = 120.0,
        **client_kwargs: Any
    ):
        """Initialize the Ollama backend.

        Args:
            host: Base URL of the Ollama server
            timeout: Seconds before a request is abandoned
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._host = host.rstrip("/")
        client_kwargs.setdefault("max_retries", 0)
        self._client = AsyncOpenAI(
            # Ollama ignores the key but the SDK insists on one
            api_key="ollama",
            base_url=f"{self._host}/v1",
            timeout=timeout,
            **client_kwargs
        )

    @property
    def host(self) -> str:
        """Get the server base URL."""
        return self._host

    def stream_conversation(
        self,
        model: str,
        messages: list[OllamaChatMessage],
    ) -> StreamingResponse:
        """Open a streaming chat request against the server.

        Args:
            model: Model identifier
            messages: Conversation history

        Returns:
            StreamingResponse that yields text fragments
        """
        payload = [{"role": msg.role, "content": msg.content} for msg in messages]
        return StreamingResponse(self._stream_generator(model, payload))

    async def _stream_generator(
        self,
        model: str,
        messages: list[dict[str, str]],
    ) -> AsyncIterator[str]:
        """Internal generator that yields content deltas."""
        try:
            stream = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
            )
        except (openai.APIError, httpx.HTTPError) as e:
            raise _translate_transport_error(e) from e

        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except (openai.APIError, httpx.HTTPError, ValueError) as e:
            # ValueError covers undecodable SSE payloads
            raise _translate_transport_error(e) from e
        finally:
            await stream.close()

    async def send_single_message(
        self,
        model: str,
        messages: list[OllamaChatMessage],
    ) -> str:
        """Send a non-streaming chat request.

        Args:
            model: Model identifier
            messages: Conversation history

        Returns:
            Full reply text
        """
        payload = [{"role": msg.role, "content": msg.content} for msg in messages]

        try:
            completion = await self._client.chat.completions.create(
                model=model,
                messages=payload,
                stream=False,
            )
        except openai.APIResponseValidationError as e:
            raise MalformedResponseError(f"Unparseable reply from {model}: {e}") from e
        except (openai.APIError, httpx.HTTPError) as e:
            raise _translate_transport_error(e) from e

        if not getattr(completion, "choices", None):
            raise MalformedResponseError(f"Reply from {model} has no choices")

        content = completion.choices[0].message.content
        if content is None:
            raise MalformedResponseError(f"Reply from {model} has no message content")
        return content

    async def list_models(self) -> list[str]:
        """List models installed on the server, in server order."""
        try:
            page = await self._client.models.list()
        except (openai.APIError, httpx.HTTPError) as e:
            raise _translate_transport_error(e) from e
        return [model.id for model in page.data]

    async def close(self) -> None:
        """Close the underlying HTTP client.

        Note: Uses the OpenAI SDK's async client cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()
