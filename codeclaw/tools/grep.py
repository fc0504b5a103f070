"""Grep tool for searching file contents."""

import asyncio
import fnmatch
import os
import re
from pathlib import Path
from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_MATCHES = 200
MAX_FILE_BYTES = 2_000_000
_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache"}


def _expand_braces(pattern: str) -> list[str]:
    """Expand one level of ``{a,b}`` alternation, e.g. ``*.{ts,tsx}``."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end():]
    return [head + option + tail for option in match.group(1).split(",")]


def _search(root: Path, regex: re.Pattern[str], include: str | None) -> tuple[list[str], bool]:
    includes = _expand_braces(include) if include else []
    results: list[str] = []

    candidates: list[Path]
    if root.is_file():
        candidates = [root]
    else:
        candidates = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
            for filename in sorted(filenames):
                if includes and not any(fnmatch.fnmatch(filename, item) for item in includes):
                    continue
                candidates.append(Path(dirpath) / filename)

    for path in candidates:
        try:
            if path.stat().st_size > MAX_FILE_BYTES:
                continue
            raw = path.read_bytes()
        except OSError:
            continue
        if b"\x00" in raw[:8192]:
            continue
        text = raw.decode("utf-8", errors="replace")
        for number, line in enumerate(text.splitlines(), start=1):
            if regex.search(line):
                results.append(f"{path}:{number}: {line.strip()[:300]}")
                if len(results) >= MAX_MATCHES:
                    return results, True
    return results, False


class GrepTool(Tool):
    """Search file contents with a regular expression."""

    name = "grep"
    description = (
        "Search file contents for a regular expression. Optionally limit the "
        "search to a directory and to files matching a glob such as '*.py' or "
        "'*.{ts,tsx}'. Returns file:line: text matches."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regular expression to search for",
            },
            "path": {
                "type": "string",
                "description": "File or directory to search (default: working directory)",
            },
            "include": {
                "type": "string",
                "description": "Glob filter for file names (e.g. '*.js', '*.{ts,tsx}')",
            },
        },
        "required": ["pattern"],
    }

    async def execute(
        self,
        pattern: str,
        path: str | None = None,
        include: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ToolResult.error(f"Error: Invalid regular expression: {e}")

        root = resolve_tool_path(path or ".", kwargs)
        if not root.exists():
            return ToolResult.error(f"Error: Path not found: {path}")

        loop = asyncio.get_running_loop()
        matches, truncated = await loop.run_in_executor(None, lambda: _search(root, regex, include))

        if not matches:
            return ToolResult.text(f"No matches found for: {pattern}")
        output = "\n".join(matches)
        if truncated:
            output += f"\n... [stopped after {MAX_MATCHES} matches]"
        return ToolResult.text(output)
