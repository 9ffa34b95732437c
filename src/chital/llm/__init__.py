from .base import ModelBackend
from .models import OllamaChatMessage, StreamingResponse
from .providers import OllamaBackend

__all__ = [
    "ModelBackend",
    "OllamaBackend",
    "OllamaChatMessage",
    "StreamingResponse",
]
