"""Session layer: the per-thread exchange state machine and title generation."""

from .controller import SessionController, SessionRegistry, SessionState
from .history import to_backend_messages
from .summarizer import (
    REASONING_MODELS,
    TitleSummarizer,
    postprocess_title,
    strip_reasoning,
)

__all__ = [
    "REASONING_MODELS",
    "SessionController",
    "SessionRegistry",
    "SessionState",
    "TitleSummarizer",
    "postprocess_title",
    "strip_reasoning",
    "to_backend_messages",
]
