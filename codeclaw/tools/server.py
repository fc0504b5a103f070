"""Built-in file tools exposed as an MCP stdio server.

Run with ``python -m codeclaw.tools.server``. The process serves the
read, list, write and edit tools relative to its working directory so a
session can host them out of process through ``tool_servers`` config.
"""

from pathlib import Path

from mcp.server.fastmcp import FastMCP

from codeclaw.logging import configure_logging, get_logger
from codeclaw.tools.edit import EditTool
from codeclaw.tools.list_dir import ListTool
from codeclaw.tools.multi_edit import EditOperation, MultiEditTool
from codeclaw.tools.read import ReadTool
from codeclaw.tools.registry import Tool, ToolResult
from codeclaw.tools.write import WriteTool

log = get_logger(__name__)

mcp = FastMCP(
    name="codeclaw-tools",
    instructions="File tools for CodeClaw: read, list, write and edit files.",
)


async def _run(tool: Tool, **arguments: object) -> str:
    """Run a built-in tool; error results surface as tool errors."""
    arguments = {key: value for key, value in arguments.items() if value is not None}
    result: ToolResult = await tool.execute(**arguments, _runtime_base_path=Path.cwd())
    text = result.as_text()
    if result.is_error:
        raise RuntimeError(text)
    return text


@mcp.tool(name="read", description=ReadTool.description)
async def read(file_path: str, offset: int | None = None, limit: int | None = None) -> str:
    return await _run(ReadTool(), file_path=file_path, offset=offset, limit=limit)


@mcp.tool(name="list", description=ListTool.description)
async def list_directory(path: str, ignore: list[str] | None = None) -> str:
    return await _run(ListTool(), path=path, ignore=ignore)


@mcp.tool(name="write", description=WriteTool.description)
async def write(file_path: str, content: str) -> str:
    return await _run(WriteTool(), file_path=file_path, content=content)


@mcp.tool(name="edit", description=EditTool.description)
async def edit(file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> str:
    return await _run(
        EditTool(),
        file_path=file_path,
        old_string=old_string,
        new_string=new_string,
        replace_all=replace_all,
    )


@mcp.tool(name="multi_edit", description=MultiEditTool.description)
async def multi_edit(file_path: str, edits: list[EditOperation]) -> str:
    return await _run(MultiEditTool(), file_path=file_path, edits=[edit.model_dump() for edit in edits])


def main() -> None:
    # stdout carries the protocol; logs must go to stderr.
    configure_logging()
    log.info("Starting tool server", name="codeclaw-tools")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
