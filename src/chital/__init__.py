"""
Chital: a chat client for models served by a local Ollama server.

Threads are persisted locally, replies stream into the thread as they are
generated, and each thread gets an automatic title after its first exchange.
"""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .exceptions import (
    ChitalError,
    MalformedResponseError,
    NoModelSelectedError,
    ThreadNotFoundError,
    TransportError,
    TransportKind,
)
from .llm import ModelBackend, OllamaBackend, OllamaChatMessage, StreamingResponse
from .session import SessionController, SessionRegistry, SessionState, TitleSummarizer
from .threads import ChatMessage, ChatThread, ThreadStore, create_thread_persistence

__all__ = [
    "ChatMessage",
    "ChatThread",
    "ChitalError",
    "MalformedResponseError",
    "ModelBackend",
    "NoModelSelectedError",
    "OllamaBackend",
    "OllamaChatMessage",
    "SessionController",
    "SessionRegistry",
    "SessionState",
    "Settings",
    "StreamingResponse",
    "ThreadNotFoundError",
    "ThreadStore",
    "TitleSummarizer",
    "TransportError",
    "TransportKind",
    "create_thread_persistence",
    "load_settings",
]
