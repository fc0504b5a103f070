"""Edit tool for exact string replacement in files."""

from typing import Any

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


class EditTool(Tool):
    """Replace exact text in a file."""

    name = "edit"
    description = (
        "Perform an exact string replacement in a file. Read the file first and "
        "preserve its indentation exactly as shown after the line-number tab. "
        "The edit fails if old_string is not unique; give more surrounding "
        "context or set replace_all to change every occurrence."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to modify",
            },
            "old_string": {
                "type": "string",
                "description": "The text to replace",
            },
            "new_string": {
                "type": "string",
                "description": "The text to replace it with (must differ from old_string)",
            },
            "replace_all": {
                "type": "boolean",
                "description": "Replace all occurrences of old_string (default false)",
            },
        },
        "required": ["file_path", "old_string", "new_string"],
    }

    async def execute(
        self,
        file_path: str,
        old_string: str,
        new_string: str,
        replace_all: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        if old_string == new_string:
            return ToolResult.error("Error: old_string and new_string are identical")
        if not old_string:
            return ToolResult.error("Error: old_string must not be empty")

        try:
            path = resolve_tool_path(file_path, kwargs)
            if not path.is_file():
                return ToolResult.error(f"Error: File not found: {file_path}")

            original = path.read_text(encoding="utf-8")
            occurrences = original.count(old_string)
            if occurrences == 0:
                return ToolResult.error(f"Error: old_string not found in {file_path}")
            if occurrences > 1 and not replace_all:
                return ToolResult.error(
                    f"Error: old_string appears {occurrences} times in {file_path}. "
                    "Provide more context to make it unique or set replace_all."
                )

            if replace_all:
                updated = original.replace(old_string, new_string)
            else:
                updated = original.replace(old_string, new_string, 1)
            path.write_text(updated, encoding="utf-8")

            replaced = occurrences if replace_all else 1
            log.debug("File edited", path=str(path), replacements=replaced)
            return ToolResult.text(f"Edited {path}: {replaced} replacement(s)")

        except (OSError, UnicodeDecodeError) as e:
            log.error("Edit failed", path=file_path, error=str(e))
            return ToolResult.error(f"Error: {e}")
