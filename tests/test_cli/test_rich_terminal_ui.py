import io

import pytest
from rich.console import Console

from codeclaw import cli as cli_module
from codeclaw.cli import TerminalUI
from codeclaw.config import Config
from codeclaw.hooks import ConversationEntry, EntryType, ToolCallStatus
from codeclaw.llm import ToolCall, Usage
from codeclaw.permissions import PermissionDecision, PermissionRequest


def _ui(config: Config | None = None) -> tuple[TerminalUI, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=100, color_system=None, highlight=False)
    return TerminalUI(config, console=console), buffer


def test_assistant_entries_render_markdown():
    ui, buffer = _ui()

    ui.on_entry(ConversationEntry(type=EntryType.ASSISTANT, content="Done with **bold** text"))

    assert "Done with bold text" in buffer.getvalue()


def test_tool_entry_status_is_printed_once_finished():
    ui, buffer = _ui()
    entry = ConversationEntry(type=EntryType.TOOL, content="**read**(app.py)", status=ToolCallStatus.RUNNING)

    ui.on_entry(entry)
    ui.on_entry_status(entry.id, ToolCallStatus.RUNNING)
    ui.on_entry_status(entry.id, ToolCallStatus.SUCCESS)
    ui.on_entry_status("unknown", ToolCallStatus.ERROR)

    out = buffer.getvalue()
    assert out.count("✓") == 1
    assert "●" in out
    assert "✗" not in out


def test_finished_tool_entries_are_forgotten():
    ui, buffer = _ui()
    running = ConversationEntry(type=EntryType.TOOL, content="**bash**(make)", status=ToolCallStatus.RUNNING)
    ui.on_entry(running)
    ui.on_entry(ConversationEntry(type=EntryType.ASSISTANT, content="Building"))
    assert list(ui._entries) == [running.id]

    ui.on_entry_status(running.id, ToolCallStatus.RUNNING)
    assert running.id in ui._entries

    ui.on_entry_status(running.id, ToolCallStatus.ERROR)
    ui.on_entry_status(running.id, ToolCallStatus.ERROR)

    assert ui._entries == {}
    assert buffer.getvalue().count("✗") == 1


def test_errors_and_usage_lines():
    ui, buffer = _ui()

    ui.on_error("Request failed [after 3 attempts]")
    ui.on_usage("m1", Usage(10, 5, 15))

    out = buffer.getvalue()
    assert "Error: Request failed [after 3 attempts]" in out
    assert "Tokens: 10 + 5 = 15" in out


def test_usage_line_can_be_hidden():
    config = Config()
    config.ui.show_tokens = False
    ui, buffer = _ui(config)

    ui.on_usage("m1", Usage(1, 1, 2))

    assert buffer.getvalue() == ""


def test_loading_spinner_starts_and_stops():
    ui, _ = _ui()

    ui.on_loading(True)
    assert ui._status is not None
    ui.on_token_progress(42)
    ui.on_loading(False)
    assert ui._status is None


@pytest.mark.asyncio
async def test_permission_prompt_maps_answers(monkeypatch: pytest.MonkeyPatch):
    ui, buffer = _ui()
    answers = iter(["a", "n"])
    monkeypatch.setattr(cli_module.Prompt, "ask", lambda *args, **kwargs: next(answers))
    request = PermissionRequest(
        tool_name="bash",
        tool_call=ToolCall(id="c1", name="bash", arguments='{"command": "ls -la"}'),
        description="Run a shell command",
        fingerprint="shell:ls -la",
    )

    assert await ui.permission_prompt.request(request) is PermissionDecision.SESSION
    assert await ui.permission_prompt.request(request) is PermissionDecision.DENY

    out = buffer.getvalue()
    assert "Permission required" in out
    assert '"command": "ls -la"' in out
