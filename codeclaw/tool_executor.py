"""Concurrent execution of an approved batch of tool calls."""

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Any, Sequence

from codeclaw.exceptions import ToolCallValidationError
from codeclaw.hooks import ConversationEntry, ConversationHooks, EntryType, ToolCallStatus
from codeclaw.llm import Message, ToolCall
from codeclaw.logging import get_logger

log = get_logger(__name__)

ALL_FAILED_ERROR = "All tool calls failed - unable to continue conversation"
INTERRUPTED_TOOL_RESULT = "Interrupted by user"

_PATH_ARGUMENTS = {
    "read": "file_path",
    "write": "file_path",
    "edit": "file_path",
    "multi_edit": "file_path",
    "list": "path",
    "glob": "pattern",
    "grep": "pattern",
}


def validate_tool_calls(calls: Sequence[ToolCall]) -> None:
    """Reject the batch if any call is missing its id or function name.

    Raises:
        ToolCallValidationError naming the first malformed call
    """
    for position, call in enumerate(calls):
        if not call.is_well_formed():
            raise ToolCallValidationError(
                f"Invalid tool call at position {position}: "
                f"id={call.id!r} name={call.name!r}"
            )


def format_tool_call_display(tool_name: str, arguments: str | dict[str, Any] | None) -> str:
    """Short label for a running tool entry, e.g. ``**read**(src/app.py)``."""
    label = f"**{tool_name}**"
    key = _PATH_ARGUMENTS.get(str(tool_name or "").lower())
    if key is None:
        return label

    args: Any = arguments
    if isinstance(arguments, str):
        try:
            args = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError:
            return label
    if not isinstance(args, dict):
        return label

    value = args.get(key)
    if not isinstance(value, str) or not value:
        return label

    display = value
    if os.path.isabs(value):
        relative = os.path.relpath(value, os.getcwd())
        if not relative.startswith(".."):
            display = relative
    return f"{label}({display})"


def interrupted_tool_messages(calls: Sequence[ToolCall]) -> list[Message]:
    """One "Interrupted by user" result per open call, in call order."""
    return [Message.tool(call.id, INTERRUPTED_TOOL_RESULT, tool_name=call.name) for call in calls]


@dataclass
class BatchResult:
    """Outcome of one executed batch."""

    success: bool
    tool_results: list[Message] = field(default_factory=list)
    error: str | None = None
    failed: int = 0


@dataclass
class _CallOutcome:
    message: Message
    ok: bool


class ToolExecutor:
    """Fan a batch of tool calls out to the registry and join the results.

    One failing call never blocks its siblings: it still yields a tool
    result (``Error: ...``) so every call id is answered. The batch only
    fails when no call succeeded.
    """

    def __init__(self, registry: Any, hooks: ConversationHooks | None = None):
        self.registry = registry
        self.hooks = hooks or ConversationHooks()

    async def _run_one(self, call: ToolCall) -> _CallOutcome:
        entry_id = self.hooks.on_entry(
            ConversationEntry(
                type=EntryType.TOOL,
                content=format_tool_call_display(call.name, call.arguments),
                status=ToolCallStatus.RUNNING,
                tool_call_id=call.id,
            )
        )
        log.info("Executing tool", tool=call.name, call_id=call.id)

        try:
            result = await self.registry.invoke(call.name, call.arguments)
        except Exception as e:
            message = str(getattr(e, "reason", "") or e)
            log.warning("Tool call failed", tool=call.name, call_id=call.id, error=message)
            self.hooks.on_entry_status(entry_id, ToolCallStatus.ERROR)
            self.hooks.on_error(f"Tool {call.name} failed: {message}")
            return _CallOutcome(
                message=Message.tool(call.id, f"Error: {message}", tool_name=call.name),
                ok=False,
            )

        try:
            tool_message = result.to_message(call.id, tool_name=call.name)
        except TypeError as e:
            log.warning("Tool returned unsupported content", tool=call.name, error=str(e))
            self.hooks.on_entry_status(entry_id, ToolCallStatus.ERROR)
            self.hooks.on_error(f"Tool {call.name} failed: {e}")
            return _CallOutcome(
                message=Message.tool(call.id, f"Error: {e}", tool_name=call.name),
                ok=False,
            )

        if result.is_error:
            self.hooks.on_entry_status(entry_id, ToolCallStatus.ERROR)
            self.hooks.on_error(f"Tool {call.name} failed: {tool_message.text()}")
            return _CallOutcome(message=tool_message, ok=False)

        self.hooks.on_entry_status(entry_id, ToolCallStatus.SUCCESS)
        return _CallOutcome(message=tool_message, ok=True)

    async def execute_batch(self, calls: Sequence[ToolCall]) -> BatchResult:
        """Execute every call concurrently.

        Raises:
            ToolCallValidationError if any call lacks an id or name
        """
        validate_tool_calls(calls)
        if not calls:
            return BatchResult(success=True)

        outcomes = await asyncio.gather(
            *(self._run_one(call) for call in calls),
            return_exceptions=True,
        )

        tool_results: list[Message] = []
        succeeded = 0
        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                log.error("Tool call task failed", tool=call.name, error=str(outcome))
                self.hooks.on_error(f"Tool call task failed: {outcome}")
                # Every call id still needs a matching result.
                tool_results.append(Message.tool(call.id, f"Error: {outcome}", tool_name=call.name))
                continue
            tool_results.append(outcome.message)
            if outcome.ok:
                succeeded += 1

        failed = len(calls) - succeeded
        if succeeded == 0:
            log.warning("All tool calls failed", count=len(calls))
            return BatchResult(
                success=False,
                tool_results=tool_results,
                error=ALL_FAILED_ERROR,
                failed=failed,
            )
        return BatchResult(success=True, tool_results=tool_results, failed=failed)
