import asyncio
from pathlib import Path
from typing import Any

import pytest

from codeclaw.config import ToolsConfig
from codeclaw.exceptions import ToolArgumentsError, ToolExecutionError, ToolNotFoundError
from codeclaw.tools import TodoStore, build_default_registry
from codeclaw.tools.registry import Tool, ToolRegistry, ToolResult


class _EchoTool(Tool):
    name = "Echo"
    description = "Echo text back"
    parameters = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self):
        self.kwargs: dict[str, Any] = {}

    async def execute(self, text: str, **kwargs: Any) -> ToolResult:
        self.kwargs = kwargs
        return ToolResult.text(text)


class _SlowTool(Tool):
    name = "slow"
    description = "Sleeps"
    timeout_seconds = 0.05

    def __init__(self):
        self.cancelled = False

    async def execute(self, **kwargs: Any) -> ToolResult:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return ToolResult.text("never")


class _FakeServer:
    name = "fake"

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self.calls.append((name, arguments))
        return ToolResult(
            content=[{"type": "text", "text": "remote"}, {"type": "image", "mimeType": "image/png", "data": "AA"}]
        )


@pytest.mark.asyncio
async def test_invoke_is_case_insensitive_and_passes_base_path(tmp_path: Path):
    registry = ToolRegistry(base_path=tmp_path)
    tool = _EchoTool()
    registry.register(tool)

    result = await registry.invoke("ECHO", '{"text": "hi"}')

    assert result.as_text() == "hi"
    assert tool.kwargs["_runtime_base_path"] == tmp_path.resolve()
    assert registry.has_tool("echo")
    assert registry.list_tools() == ["Echo"]


@pytest.mark.asyncio
async def test_invoke_unknown_tool_raises():
    with pytest.raises(ToolNotFoundError):
        await ToolRegistry().invoke("missing", "{}")


@pytest.mark.asyncio
async def test_invoke_rejects_invalid_json_and_missing_fields():
    registry = ToolRegistry()
    registry.register(_EchoTool())

    with pytest.raises(ToolArgumentsError):
        await registry.invoke("echo", "{not json")
    with pytest.raises(ToolArgumentsError):
        await registry.invoke("echo", "[1, 2]")
    with pytest.raises(ToolArgumentsError, match="Missing required argument: text"):
        await registry.invoke("echo", "{}")


@pytest.mark.asyncio
async def test_invoke_times_out_and_cancels_handler():
    registry = ToolRegistry()
    slow = _SlowTool()
    registry.register(slow)

    with pytest.raises(ToolExecutionError) as excinfo:
        await registry.invoke("slow", "{}")

    assert excinfo.value.reason == "Execution timed out after 1s"
    assert slow.cancelled is True


@pytest.mark.asyncio
async def test_remote_tool_forwards_plain_arguments():
    registry = ToolRegistry()
    server = _FakeServer()
    registry.register_remote("lookup", "Remote lookup", None, server)

    result = await registry.invoke("lookup", {"query": "x"})

    assert server.calls == [("lookup", {"query": "x"})]
    message = result.to_message("c1", tool_name="lookup")
    assert [chunk.text for chunk in message.content] == ["remote", "[Image: image/png]"]
    assert registry.describe("lookup") == "Remote lookup"
    assert registry.get_definitions()[0].parameters == {"type": "object", "properties": {}}


def test_unregister_removes_tool():
    registry = ToolRegistry()
    registry.register(_EchoTool())
    registry.unregister("ECHO")
    assert not registry.has_tool("echo")
    with pytest.raises(ToolNotFoundError):
        registry.get("echo")


def test_tool_result_single_text_chunk_becomes_string():
    message = ToolResult.text("plain").to_message("c1", tool_name="read")
    assert message.content == "plain"
    assert message.tool_call_id == "c1"


def test_build_default_registry_respects_enabled_list(tmp_path: Path):
    registry = build_default_registry(ToolsConfig(), TodoStore(), base_path=tmp_path)
    assert set(registry.list_tools()) == {
        "read", "write", "edit", "multi_edit", "list", "glob", "grep", "bash", "web_fetch", "todo_write",
    }

    limited = build_default_registry(ToolsConfig(enabled=["read", "grep"]))
    assert sorted(limited.list_tools()) == ["grep", "read"]
