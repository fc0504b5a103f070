"""Multi-edit tool: several exact replacements in one file, all or nothing."""

from typing import Any

from pydantic import BaseModel, ValidationError

from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


class EditOperation(BaseModel):
    """One replacement inside a multi-edit."""

    old_string: str
    new_string: str
    replace_all: bool = False


def apply_edits(
    original: str, edits: list[EditOperation], file_path: str, start: int = 1
) -> tuple[str, int]:
    """Apply edits in order to an in-memory copy.

    Each edit sees the result of the previous one and follows the rules of
    the single ``edit`` tool. An empty ``old_string`` is only allowed as the
    first edit of a file that does not exist yet, where it supplies the
    initial content.

    Returns:
        The updated text and the total number of replacements.

    Raises:
        ValueError naming the first edit that cannot be applied
    """
    content = original
    replaced = 0
    for position, edit in enumerate(edits, start=start):
        label = f"Edit {position}"
        if edit.old_string == edit.new_string:
            raise ValueError(f"{label}: old_string and new_string are identical")
        if not edit.old_string:
            raise ValueError(f"{label}: old_string must not be empty")

        occurrences = content.count(edit.old_string)
        if occurrences == 0:
            raise ValueError(f"{label}: old_string not found in {file_path}")
        if occurrences > 1 and not edit.replace_all:
            raise ValueError(
                f"{label}: old_string appears {occurrences} times in {file_path}. "
                "Provide more context to make it unique or set replace_all."
            )

        if edit.replace_all:
            content = content.replace(edit.old_string, edit.new_string)
            replaced += occurrences
        else:
            content = content.replace(edit.old_string, edit.new_string, 1)
            replaced += 1
    return content, replaced


class MultiEditTool(Tool):
    """Apply several exact replacements to one file atomically."""

    name = "multi_edit"
    description = (
        "Make several exact string replacements in one file in a single operation. "
        "Edits are applied in order and each one operates on the result of the "
        "previous edit. Every edit follows the rules of the edit tool. If any edit "
        "fails, none are applied and the file is left unchanged. To create a new "
        "file, give an empty old_string in the first edit with the file's contents "
        "as new_string."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the file to modify",
            },
            "edits": {
                "type": "array",
                "minItems": 1,
                "description": "Edit operations to perform in order",
                "items": {
                    "type": "object",
                    "properties": {
                        "old_string": {
                            "type": "string",
                            "description": "The text to replace",
                        },
                        "new_string": {
                            "type": "string",
                            "description": "The text to replace it with",
                        },
                        "replace_all": {
                            "type": "boolean",
                            "description": "Replace all occurrences of old_string (default false)",
                        },
                    },
                    "required": ["old_string", "new_string"],
                },
            },
        },
        "required": ["file_path", "edits"],
    }

    async def execute(self, file_path: str, edits: list[Any], **kwargs: Any) -> ToolResult:
        try:
            operations = [EditOperation.model_validate(edit) for edit in edits]
        except ValidationError as e:
            return ToolResult.error(f"Error: invalid edits: {e.errors()[0]['msg']}")
        if not operations:
            return ToolResult.error("Error: edits must contain at least one edit")

        start = 1
        try:
            path = resolve_tool_path(file_path, kwargs)
            if path.is_file():
                original = path.read_text(encoding="utf-8")
            elif path.exists():
                return ToolResult.error(f"Error: Not a file: {file_path}")
            elif operations[0].old_string == "":
                original = operations[0].new_string
                operations = operations[1:]
                start = 2
            else:
                return ToolResult.error(f"Error: File not found: {file_path}")

            try:
                updated, replaced = apply_edits(original, operations, file_path, start)
            except ValueError as e:
                log.debug("Multi-edit rejected", path=str(path), error=str(e))
                return ToolResult.error(f"Error: {e}\nNo edits were applied.")

            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(updated, encoding="utf-8")

            log.debug("File multi-edited", path=str(path), edits=len(edits), replacements=replaced)
            return ToolResult.text(f"Edited {path}: {len(edits)} edit(s), {replaced} replacement(s)")

        except (OSError, UnicodeDecodeError) as e:
            log.error("Multi-edit failed", path=file_path, error=str(e))
            return ToolResult.error(f"Error: {e}")
