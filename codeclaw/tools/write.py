"""Write tool for writing file contents."""

from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


class WriteTool(Tool):
    """Write content to files."""

    name = "write"
    description = (
        "Create or overwrite a file with content. Parent directories are created "
        "as needed. Prefer editing existing files over writing new ones."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file",
            },
        },
        "required": ["file_path", "content"],
    }

    async def execute(self, file_path: str, content: str, **kwargs: Any) -> ToolResult:
        """Write content to a file.

        Args:
            file_path: Path to file
            content: Content to write

        Returns:
            ToolResult with status
        """
        if not isinstance(content, str):
            return ToolResult.error("Error: 'content' must be a string")
        try:
            path = resolve_tool_path(file_path, kwargs)
            if path.is_dir():
                return ToolResult.error(f"Error: Path is a directory: {file_path}")

            existed = path.exists()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

            verb = "Updated" if existed else "Created"
            return ToolResult.text(f"{verb} {path} ({len(content)} chars)")

        except OSError as e:
            log.error("Write failed", path=file_path, error=str(e))
            return ToolResult.error(f"Error: {e}")
