"""Tool registry and base tool class."""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from codeclaw.exceptions import ToolArgumentsError, ToolExecutionError, ToolNotFoundError
from codeclaw.llm import (
    ContentChunk,
    Message,
    TextChunk,
    ToolDefinition,
    chunk_from_wire,
    render_chunk_for_display,
)
from codeclaw.logging import get_logger

log = get_logger(__name__)


def _normalize_tool_name(value: str) -> str:
    """Normalize tool names for lookups."""
    return str(value or "").strip().lower()


def resolve_tool_path(path: str, kwargs: dict[str, Any]) -> Path:
    """Resolve a path argument; relative paths are taken from the runtime base path."""
    requested = Path(path).expanduser()
    if requested.is_absolute():
        return requested.resolve()
    base_raw = kwargs.get("_runtime_base_path")
    base = Path(base_raw).expanduser() if base_raw is not None else Path.cwd()
    return (base / requested).resolve()


class ToolResult(BaseModel):
    """Result from tool execution.

    ``content`` holds wire-shaped chunks (``{"type": "text", "text": ...}``,
    image/audio/resource references). ``is_error`` marks user-input errors
    the handler reported instead of raising.
    """

    content: list[dict[str, Any]] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[{"type": "text", "text": text}])

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=[{"type": "text", "text": message}], is_error=True)

    def chunks(self) -> tuple[ContentChunk, ...]:
        """Parse content into chunks.

        Raises:
            TypeError on an unsupported content type
        """
        return tuple(chunk_from_wire(item) for item in self.content)

    def as_text(self) -> str:
        return "\n".join(render_chunk_for_display(chunk) for chunk in self.chunks())

    def to_message(self, tool_call_id: str, tool_name: str | None = None) -> Message:
        """Build the tool-result message. Non-text chunks become placeholders."""
        content = tuple(TextChunk(text=render_chunk_for_display(chunk)) for chunk in self.chunks())
        if len(content) == 1:
            return Message.tool(tool_call_id, content[0].text, tool_name=tool_name)
        return Message.tool(tool_call_id, content, tool_name=tool_name)


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments

        Returns:
            ToolResult with content and error flag
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Args:
            arguments: Arguments to validate

        Raises:
            ToolArgumentsError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolArgumentsError(self.name, f"Missing required argument: {field}")


class RemoteToolServer(Protocol):
    """Anything that can run a tool call out of process."""

    name: str

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult: ...


class RemoteTool(Tool):
    """A tool whose handler lives in an out-of-process tool server."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        server: RemoteToolServer,
        timeout_seconds: float = 120.0,
    ):
        self.name = name
        self.description = description or ""
        self.parameters = parameters or {"type": "object", "properties": {}}
        self.server = server
        self.timeout_seconds = timeout_seconds

    async def execute(self, **kwargs: Any) -> ToolResult:
        arguments = {key: value for key, value in kwargs.items() if not key.startswith("_")}
        return await self.server.call_tool(self.name, arguments)


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self, base_path: Path | str | None = None):
        self._tools: dict[str, Tool] = {}
        self._runtime_base_path = Path.cwd()
        self.set_runtime_base_path(base_path or Path.cwd())

    def set_runtime_base_path(self, base_path: Path | str) -> None:
        """Set the directory relative paths in tool arguments resolve against."""
        self._runtime_base_path = Path(base_path).expanduser().resolve()

    @property
    def runtime_base_path(self) -> Path:
        """Runtime base path from which CodeClaw was launched."""
        return self._runtime_base_path

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[_normalize_tool_name(tool.name)] = tool

    def register_remote(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any] | None,
        server: RemoteToolServer,
    ) -> Tool:
        """Register a tool served by an out-of-process server."""
        tool = RemoteTool(name, description, parameters, server)
        self.register(tool)
        return tool

    def unregister(self, name: str) -> None:
        """Unregister a tool.

        Args:
            name: Tool name to unregister
        """
        self._tools.pop(_normalize_tool_name(name), None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return _normalize_tool_name(name) in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Args:
            name: Tool name

        Returns:
            Tool instance

        Raises:
            ToolNotFoundError if not found
        """
        tool = self._tools.get(_normalize_tool_name(name))
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def describe(self, name: str) -> str:
        """Registered description of a tool, or empty string."""
        tool = self._tools.get(_normalize_tool_name(name))
        return tool.description if tool is not None else ""

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return [tool.name for tool in self._tools.values()]

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]

    @staticmethod
    def decode_arguments(name: str, arguments: str | dict[str, Any] | None) -> dict[str, Any]:
        """Decode raw tool-call arguments into a mapping.

        Raises:
            ToolArgumentsError if the arguments are not a JSON object
        """
        if arguments is None:
            return {}
        if isinstance(arguments, dict):
            return dict(arguments)
        raw = arguments.strip()
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolArgumentsError(name, f"arguments are not valid JSON ({e.msg})") from e
        if not isinstance(decoded, dict):
            raise ToolArgumentsError(name, "arguments must be a JSON object")
        return decoded

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def invoke(self, name: str, arguments: str | dict[str, Any] | None) -> ToolResult:
        """Execute a tool by name.

        Args:
            name: Tool name
            arguments: Raw JSON string or decoded mapping

        Returns:
            ToolResult from execution

        Raises:
            ToolNotFoundError if tool not found
            ToolArgumentsError if arguments are malformed
            ToolExecutionError if execution fails or times out
        """
        tool = self.get(name)
        decoded = self.decode_arguments(tool.name, arguments)
        tool.validate_arguments(decoded)

        timeout_seconds = float(getattr(tool, "timeout_seconds", 30.0) or 30.0)
        timeout_override = decoded.get("timeout")
        if isinstance(timeout_override, (int, float)) and not isinstance(timeout_override, bool):
            timeout_seconds = float(timeout_override) + 5.0
        timeout_seconds = max(1.0, timeout_seconds)

        execute_task: asyncio.Task[ToolResult] | None = None
        try:
            log.info("Executing tool", tool=tool.name, args=decoded)
            execute_task = asyncio.create_task(
                tool.execute(**decoded, _runtime_base_path=self.runtime_base_path)
            )
            done, _ = await asyncio.wait({execute_task}, timeout=timeout_seconds)

            if execute_task in done:
                result = execute_task.result()
                if not isinstance(result, ToolResult):
                    raise ToolExecutionError(tool.name, "Tool returned invalid result payload")
                log.info("Tool executed", tool=tool.name, is_error=result.is_error)
                return result

            await self._cancel_task(execute_task)
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(tool.name, f"Execution timed out after {timeout_label}s")
        except asyncio.CancelledError:
            await self._cancel_task(execute_task)
            raise
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            raise ToolExecutionError(tool.name, str(e)) from e
