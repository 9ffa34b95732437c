"""Error taxonomy for chital.

Backend failures are translated into these types at the backend boundary,
so the session layer never needs to know which HTTP client is in use.
"""

from enum import Enum

CONNECTION_REFUSED_MESSAGE = (
    "Unable to connect to the Ollama API. Please ensure that the Ollama server is running."
)
TIMEOUT_MESSAGE = "The request to Ollama API timed out. Please try again later."
UNEXPECTED_MESSAGE = (
    "An unexpected error occurred while communicating with the Ollama API: {detail}"
)


class ChitalError(Exception):
    """Base class for all chital errors."""


class NoModelSelectedError(ChitalError):
    """No model could be resolved for a thread at send time."""

    def __init__(self, message: str = "No model selected"):
        super().__init__(message)


class TransportKind(str, Enum):
    """What went wrong on the wire."""

    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    OTHER = "other"


class TransportError(ChitalError):
    """The model server could not be reached or the stream broke off."""

    def __init__(self, message: str, kind: TransportKind = TransportKind.OTHER):
        super().__init__(message)
        self.kind = kind


class MalformedResponseError(ChitalError):
    """A single-shot reply did not have the expected shape."""


class ThreadNotFoundError(ChitalError):
    """No persisted thread exists with the requested id."""


def describe_error(error: BaseException) -> str:
    """Convert an exchange failure into the message shown to the user.

    Args:
        error: Exception raised while sending or streaming

    Returns:
        A single user-facing sentence
    """
    if isinstance(error, TransportError):
        if error.kind is TransportKind.CONNECTION_REFUSED:
            return CONNECTION_REFUSED_MESSAGE
        if error.kind is TransportKind.TIMEOUT:
            return TIMEOUT_MESSAGE
    return UNEXPECTED_MESSAGE.format(detail=error)
