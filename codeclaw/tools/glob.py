"""Glob tool for finding files by pattern."""

import asyncio
from pathlib import Path
from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


def _find(root: Path, pattern: str, limit: int) -> tuple[list[Path], int]:
    matches = [
        match
        for match in root.glob(pattern)
        if match.is_file() and ".git" not in match.relative_to(root).parts
    ]
    # Most recently modified first.
    matches.sort(key=lambda item: item.stat().st_mtime, reverse=True)
    return matches[:limit], len(matches)


class GlobTool(Tool):
    """Find files by pattern."""

    name = "glob"
    description = (
        "Find files matching a glob pattern such as '**/*.py' or 'src/**/*.ts'. "
        "Results are sorted by modification time, newest first."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern (e.g., '**/*.py', 'src/**/*.ts')",
            },
            "path": {
                "type": "string",
                "description": "Directory to search from (default: working directory)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of results (default: 100)",
            },
        },
        "required": ["pattern"],
    }

    async def execute(
        self,
        pattern: str,
        path: str | None = None,
        limit: int = 100,
        **kwargs: Any,
    ) -> ToolResult:
        """Find files matching pattern.

        Args:
            pattern: Glob pattern
            path: Optional root directory
            limit: Max results

        Returns:
            ToolResult with matching files
        """
        if not str(pattern or "").strip():
            return ToolResult.error("Error: pattern must not be empty")
        try:
            root = resolve_tool_path(path or ".", kwargs)
            if not root.is_dir():
                return ToolResult.error(f"Error: Not a directory: {path}")

            loop = asyncio.get_running_loop()
            matches, total = await loop.run_in_executor(
                None,
                lambda: _find(root, pattern, max(1, int(limit))),
            )

            if not matches:
                return ToolResult.text(f"No files found matching: {pattern}")

            output = f"Found {total} file(s)"
            if total > len(matches):
                output += f", showing {len(matches)}"
            output += ":\n" + "\n".join(str(match) for match in matches)
            return ToolResult.text(output)

        except (OSError, ValueError, NotImplementedError) as e:
            log.error("Glob failed", pattern=pattern, error=str(e))
            return ToolResult.error(f"Error: {e}")
