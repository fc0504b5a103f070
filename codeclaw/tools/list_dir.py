"""List tool for directory contents."""

import fnmatch
from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_ENTRIES = 500


class ListTool(Tool):
    """List files and directories in a path."""

    name = "list"
    description = (
        "List files and directories in a given path, directories first. "
        "Optionally pass glob patterns to ignore. Prefer glob and grep when "
        "you know what to search for."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list",
            },
            "ignore": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Glob patterns to ignore",
            },
        },
        "required": ["path"],
    }

    async def execute(self, path: str, ignore: list[str] | None = None, **kwargs: Any) -> ToolResult:
        if ignore is not None and not isinstance(ignore, list):
            return ToolResult.error("Error: 'ignore' must be a list of glob patterns")
        patterns = [str(item) for item in ignore or [] if str(item).strip()]

        try:
            directory = resolve_tool_path(path, kwargs)
            if not directory.exists():
                return ToolResult.error(f"Error: Path not found: {path}")
            if not directory.is_dir():
                return ToolResult.error(f"Error: Not a directory: {path}")

            entries = []
            for child in directory.iterdir():
                if any(fnmatch.fnmatch(child.name, pattern) for pattern in patterns):
                    continue
                entries.append(child)
            entries.sort(key=lambda item: (not item.is_dir(), item.name.lower()))

            if not entries:
                return ToolResult.text(f"{directory}/ is empty")

            lines = [f"{directory}/"]
            for child in entries[:MAX_ENTRIES]:
                suffix = "/" if child.is_dir() else ""
                lines.append(f"  - {child.name}{suffix}")
            if len(entries) > MAX_ENTRIES:
                lines.append(f"  ... {len(entries) - MAX_ENTRIES} more entries")
            return ToolResult.text("\n".join(lines))

        except OSError as e:
            log.error("List failed", path=path, error=str(e))
            return ToolResult.error(f"Error: {e}")
