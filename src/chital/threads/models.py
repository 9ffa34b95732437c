"""Data models for conversation threads.

These models define the structure of threads and messages, independent of
the persistence backend used.
"""

import itertools
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

# Process-wide insertion counter; breaks ties between equal timestamps
_sequence = itertools.count(1)


def next_sequence() -> int:
    """Return the next insertion sequence number."""
    return next(_sequence)


class ChatMessage(BaseModel):
    """A single message in a thread.

    ``text`` is mutable: an assistant reply starts empty and grows as
    fragments are streamed in.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    text: str = Field(default="", description="Message content")
    is_user: bool = Field(description="True for user input, False for an assistant reply")
    created_at: datetime = Field(default_factory=datetime.now)
    sequence: int = Field(default_factory=next_sequence, description="Insertion order tiebreaker")

    @property
    def role(self) -> str:
        return "user" if self.is_user else "assistant"

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.sequence)


class Draft(BaseModel):
    """Identity of a thread that has not been stored yet."""

    kind: Literal["draft"] = "draft"


class Persisted(BaseModel):
    """Identity of a thread known to the persistence backend."""

    kind: Literal["persisted"] = "persisted"
    store_id: str


ThreadIdentity = Annotated[Draft | Persisted, Field(discriminator="kind")]


class ChatThread(BaseModel):
    """A conversation thread and its session state."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
    selected_model: str | None = None
    is_thinking: bool = False
    has_received_first_message: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    identity: ThreadIdentity = Field(default_factory=Draft)

    @property
    def is_draft(self) -> bool:
        return isinstance(self.identity, Draft)

    @property
    def chronological_messages(self) -> list[ChatMessage]:
        """Messages ordered by (created_at, insertion sequence)."""
        return sorted(self.messages, key=lambda message: message.sort_key)

    def find_message(self, message_id: str) -> ChatMessage | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class ThreadEventKind(str, Enum):
    """Kinds of change published by the thread store."""

    THREAD_CREATED = "thread_created"
    THREAD_UPDATED = "thread_updated"
    THREAD_DELETED = "thread_deleted"
    TITLE_CHANGED = "title_changed"
    MESSAGE_ADDED = "message_added"
    MESSAGE_UPDATED = "message_updated"
    MESSAGES_REMOVED = "messages_removed"


class ThreadEvent(BaseModel):
    """A change notification for observers of the thread store."""

    kind: ThreadEventKind
    thread_id: str
    message_ids: list[str] = Field(default_factory=list)
