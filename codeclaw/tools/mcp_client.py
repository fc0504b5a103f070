"""Out-of-process tool servers spoken to over MCP stdio."""

import json
import os
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from codeclaw.config import ToolServerConfig
from codeclaw.exceptions import ToolExecutionError, ToolServerError
from codeclaw.llm import ToolDefinition
from codeclaw.logging import get_logger
from codeclaw.tools.registry import ToolRegistry, ToolResult

log = get_logger(__name__)


def content_item_to_chunk(tool_name: str, item: Any) -> dict[str, Any]:
    """Convert one MCP content item into a text chunk for the transcript.

    Non-text items are kept as placeholders since tool messages are text.
    """
    kind = getattr(item, "type", None)
    if kind == "text":
        return {"type": "text", "text": str(getattr(item, "text", ""))}
    if kind == "image":
        return {"type": "text", "text": f"[Image: {getattr(item, 'mimeType', '')}]"}
    if kind == "audio":
        return {"type": "text", "text": f"[Audio: {getattr(item, 'mimeType', '')}]"}
    if kind == "resource":
        resource = getattr(item, "resource", None)
        return {"type": "text", "text": f"[Resource: {getattr(resource, 'uri', '')}]"}
    raise ToolExecutionError(tool_name, f"Unsupported content type: {kind}")


def call_result_to_tool_result(tool_name: str, result: Any) -> ToolResult:
    """Convert an MCP ``CallToolResult`` into a ToolResult."""
    items = list(getattr(result, "content", None) or [])
    chunks = [content_item_to_chunk(tool_name, item) for item in items]
    if not chunks:
        structured = getattr(result, "structuredContent", None)
        if structured is None:
            raise ToolExecutionError(tool_name, "No tool result found")
        chunks = [{"type": "text", "text": json.dumps(structured)}]
    return ToolResult(content=chunks, is_error=bool(getattr(result, "isError", False)))


class McpToolServer:
    """One tool server child process and its client session."""

    def __init__(self, config: ToolServerConfig):
        self.config = config
        self.name = config.name
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Start the server process and complete the MCP handshake.

        Raises:
            ToolServerError if the process cannot be started or initialized
        """
        if self._session is not None:
            return

        env = {**os.environ, **self.config.env} if self.config.env else None
        params = StdioServerParameters(command=self.config.command, args=list(self.config.args), env=env)

        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
        except Exception as e:
            await stack.aclose()
            raise ToolServerError(self.name, f"failed to start: {e}") from e

        self._stack = stack
        self._session = session
        log.info("Tool server connected", server=self.name, command=self.config.command)

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ToolServerError(self.name, "not connected")
        return self._session

    async def list_tools(self) -> list[ToolDefinition]:
        """Discover the server's tools."""
        response = await self._require_session().list_tools()
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description or "",
                parameters=dict(tool.inputSchema or {}),
            )
            for tool in response.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke a tool on the server."""
        result = await self._require_session().call_tool(name, arguments)
        return call_result_to_tool_result(name, result)

    async def disconnect(self) -> None:
        if self._stack is None:
            return
        stack, self._stack, self._session = self._stack, None, None
        await stack.aclose()
        log.info("Tool server disconnected", server=self.name)


class McpToolServerManager:
    """Connects configured tool servers and registers their tools."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry
        self._servers: dict[str, McpToolServer] = {}
        self._tools_by_server: dict[str, list[str]] = {}

    @property
    def servers(self) -> list[McpToolServer]:
        return list(self._servers.values())

    async def add_server(self, config: ToolServerConfig) -> list[str]:
        """Connect a server and register its tools. Returns registered names.

        Raises:
            ToolServerError if the server cannot be started
        """
        if config.name in self._servers:
            raise ToolServerError(config.name, "already connected")

        server = McpToolServer(config)
        await server.connect()
        try:
            definitions = await server.list_tools()
        except Exception as e:
            await server.disconnect()
            raise ToolServerError(config.name, f"tool discovery failed: {e}") from e

        registered: list[str] = []
        for definition in definitions:
            if self.registry.has_tool(definition.name):
                log.warning("Tool name already registered, skipping", tool=definition.name, server=config.name)
                continue
            self.registry.register_remote(definition.name, definition.description, definition.parameters, server)
            registered.append(definition.name)

        self._servers[config.name] = server
        self._tools_by_server[config.name] = registered
        log.info("Registered server tools", server=config.name, tools=registered)
        return registered

    async def disconnect_all(self) -> None:
        """Unregister every server tool and stop the processes."""
        for name, server in list(self._servers.items()):
            for tool_name in self._tools_by_server.pop(name, []):
                self.registry.unregister(tool_name)
            try:
                await server.disconnect()
            except Exception as e:
                log.warning("Tool server shutdown failed", server=name, error=str(e))
        self._servers.clear()
