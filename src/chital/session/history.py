from ..llm.models import OllamaChatMessage
from ..threads.models import ChatThread


def to_backend_messages(thread: ChatThread) -> list[OllamaChatMessage]:
    """Map a thread's chronological history onto role/content pairs."""
    return [
        OllamaChatMessage(role=message.role, content=message.text)
        for message in thread.chronological_messages
    ]
