"""UI-facing conversation entries and the capability interface the core reports to."""

import uuid
from enum import Enum

from pydantic import BaseModel, Field

from codeclaw.llm import Usage


class EntryType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    COMMAND = "command"
    TOOL = "tool"


class ToolCallStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class ConversationEntry(BaseModel):
    """A visible transcript item. Only ``status`` changes after creation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    type: EntryType
    content: str = ""
    status: ToolCallStatus | None = None
    tool_call_id: str | None = None


class ConversationHooks:
    """Everything the orchestration core tells the outside world.

    All methods are no-ops by default, so a frontend overrides only what it
    renders. ``permission_prompt`` is ``None`` for unattended runs, which
    approves every tool call.
    """

    permission_prompt = None

    def on_entry(self, entry: ConversationEntry) -> str:
        """A new visible entry. Returns the id later status patches refer to."""
        return entry.id

    def on_entry_status(self, entry_id: str, status: ToolCallStatus) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_loading(self, loading: bool) -> None:
        pass

    def on_token_progress(self, completion_tokens: int) -> None:
        pass

    def on_usage(self, model: str, usage: Usage) -> None:
        pass

    def interruption_requested(self) -> bool:
        return False
