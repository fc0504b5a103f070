"""Todo tool for session-scoped task tracking."""

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult

log = get_logger(__name__)


class TodoItem(BaseModel):
    """One task on the model's working list."""

    id: str
    content: str = Field(min_length=1)
    status: Literal["pending", "in_progress", "completed"]
    priority: Literal["high", "medium", "low"] = "medium"


class TodoStore:
    """Holds the current todo list for one session.

    Also serves as the orchestrator's todo provider, so outstanding tasks
    are reminded to the model on every request.
    """

    def __init__(self) -> None:
        self._todos: list[TodoItem] = []

    def current_todos(self) -> list[TodoItem]:
        return list(self._todos)

    def replace(self, todos: list[TodoItem]) -> None:
        self._todos = list(todos)

    def clear(self) -> None:
        self._todos = []


class TodoWriteTool(Tool):
    """Replace the session todo list."""

    name = "todo_write"
    description = (
        "Create and manage a structured task list for the current coding session. "
        "Use it for multi-step tasks, when the user provides several tasks, and to "
        "track progress. Task states: pending, in_progress (only ONE at a time), "
        "completed. Mark tasks completed immediately after finishing them and "
        "remove tasks that are no longer relevant. Always send the full list."
    )
    timeout_seconds = 5.0
    parameters = {
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "The updated todo list",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "Unique identifier for the todo item"},
                        "content": {"type": "string", "minLength": 1, "description": "Task description"},
                        "status": {
                            "type": "string",
                            "enum": ["pending", "in_progress", "completed"],
                            "description": "Current status of the task",
                        },
                        "priority": {
                            "type": "string",
                            "enum": ["high", "medium", "low"],
                            "description": "Priority level of the task",
                        },
                    },
                    "required": ["id", "content", "status", "priority"],
                },
            },
        },
        "required": ["todos"],
    }

    def __init__(self, store: TodoStore):
        self.store = store

    async def execute(self, todos: Any = None, **kwargs: Any) -> ToolResult:
        if not isinstance(todos, list):
            return ToolResult.error("Error: 'todos' must be a list of todo items.")
        try:
            items = [TodoItem.model_validate(item) for item in todos]
        except ValidationError as e:
            return ToolResult.error(f"Error: invalid todo item: {e.errors()[0].get('msg', e)}")

        in_progress = [item for item in items if item.status == "in_progress"]
        if len(in_progress) > 1:
            return ToolResult.error(
                "Error: Only one task can be in_progress at a time. "
                "Found multiple in_progress tasks."
            )

        self.store.replace(items)
        log.debug("Todo list updated", total=len(items), in_progress=len(in_progress))

        completed = sum(1 for item in items if item.status == "completed")
        message = (
            "Todos have been modified successfully. "
            "Ensure that you continue to use the todo list to track your progress."
        )
        if in_progress:
            message += f' Currently working on: "{in_progress[0].content}".'
        if items:
            message += f" Progress: {completed}/{len(items)} tasks completed."
        message += " Please proceed with the current tasks if applicable"
        return ToolResult.text(message)
