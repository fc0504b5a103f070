"""Tools package for CodeClaw."""

from pathlib import Path

from codeclaw.config import ToolsConfig
from codeclaw.tools.bash import BashTool
from codeclaw.tools.edit import EditTool
from codeclaw.tools.glob import GlobTool
from codeclaw.tools.grep import GrepTool
from codeclaw.tools.list_dir import ListTool
from codeclaw.tools.multi_edit import MultiEditTool
from codeclaw.tools.read import ReadTool
from codeclaw.tools.registry import (
    RemoteTool,
    Tool,
    ToolRegistry,
    ToolResult,
)
from codeclaw.tools.todo import TodoItem, TodoStore, TodoWriteTool
from codeclaw.tools.web_fetch import WebFetchTool
from codeclaw.tools.write import WriteTool


def build_default_registry(
    config: ToolsConfig | None = None,
    todo_store: TodoStore | None = None,
    base_path: Path | str | None = None,
) -> ToolRegistry:
    """Create a registry holding the enabled built-in tools."""
    config = config or ToolsConfig()
    enabled = {str(name).strip().lower() for name in config.enabled}
    registry = ToolRegistry(base_path=base_path)

    factories = {
        "read": ReadTool,
        "write": WriteTool,
        "edit": EditTool,
        "multi_edit": MultiEditTool,
        "list": ListTool,
        "glob": GlobTool,
        "grep": GrepTool,
        "bash": lambda: BashTool(config.bash),
        "web_fetch": lambda: WebFetchTool(config.web_fetch),
        "todo_write": lambda: TodoWriteTool(todo_store or TodoStore()),
    }
    for name, factory in factories.items():
        if name in enabled:
            registry.register(factory())
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "RemoteTool",
    "BashTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "ListTool",
    "MultiEditTool",
    "ReadTool",
    "WebFetchTool",
    "WriteTool",
    "TodoItem",
    "TodoStore",
    "TodoWriteTool",
    "build_default_registry",
]
