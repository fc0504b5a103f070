"""Read tool for reading file contents."""

from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_FILE_BYTES = 256_000
DEFAULT_LINE_LIMIT = 2000


class ReadTool(Tool):
    """Read file contents."""

    name = "read"
    description = (
        "Read a file from the local filesystem. Lines are returned with a "
        "line-number prefix (spaces + line number + tab); everything after the "
        "tab is file content. Use offset and limit for large files."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to read",
            },
            "offset": {
                "type": "number",
                "description": "Line number to start reading from (1-indexed)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of lines to read",
            },
        },
        "required": ["file_path"],
    }

    async def execute(
        self,
        file_path: str,
        offset: int | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Read a file.

        Args:
            file_path: Path to file
            offset: Optional 1-indexed first line
            limit: Optional line limit

        Returns:
            ToolResult with numbered file contents
        """
        try:
            path = resolve_tool_path(file_path, kwargs)

            if not path.exists():
                return ToolResult.error(f"Error: File not found: {file_path}")
            if not path.is_file():
                return ToolResult.error(f"Error: Not a file: {file_path}")

            file_size = path.stat().st_size
            if file_size > MAX_FILE_BYTES and not limit:
                return ToolResult.error(
                    f"Error: File too large: {file_size} bytes (max {MAX_FILE_BYTES}). "
                    "Use offset and limit to read it in parts."
                )

            raw = path.read_bytes()
            if b"\x00" in raw[:8192]:
                return ToolResult.error(f"Error: Binary file not supported: {file_path}")
            lines = raw.decode("utf-8", errors="replace").splitlines()

            start = max(1, int(offset or 1))
            count = max(1, int(limit)) if limit else DEFAULT_LINE_LIMIT
            selected = lines[start - 1:start - 1 + count]

            if not selected:
                if not lines:
                    return ToolResult.text(f"[{path} is empty]")
                return ToolResult.error(
                    f"Error: offset {start} is past the end of the file ({len(lines)} lines)"
                )

            numbered = "\n".join(
                f"{number:>6}\t{line}" for number, line in enumerate(selected, start=start)
            )
            end = start + len(selected) - 1
            note = ""
            if end < len(lines):
                note = f"\n[lines {start}-{end} of {len(lines)}]"
            return ToolResult.text(numbered + note)

        except (OSError, ValueError) as e:
            log.error("Read failed", path=file_path, error=str(e))
            return ToolResult.error(f"Error: {e}")
