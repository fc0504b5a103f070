"""Terminal frontend for CodeClaw."""

import asyncio
import json

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.status import Status

from codeclaw import __version__
from codeclaw.config import Config
from codeclaw.hooks import ConversationEntry, ConversationHooks, EntryType, ToolCallStatus
from codeclaw.llm import Usage
from codeclaw.logging import get_logger
from codeclaw.permissions import PermissionDecision, PermissionRequest

log = get_logger(__name__)

_STATUS_MARKS = {
    ToolCallStatus.RUNNING: "[yellow]●[/yellow]",
    ToolCallStatus.SUCCESS: "[green]✓[/green]",
    ToolCallStatus.ERROR: "[red]✗[/red]",
}

_DECISIONS = {
    "y": PermissionDecision.ONCE,
    "a": PermissionDecision.SESSION,
    "n": PermissionDecision.DENY,
}


class RichPermissionPrompt:
    """Ask the user whether a tool call may run."""

    def __init__(self, ui: "TerminalUI"):
        self.ui = ui

    def _ask(self, request: PermissionRequest) -> PermissionDecision:
        console = self.ui.console
        try:
            arguments = json.dumps(request.tool_call.parsed_arguments(), indent=2, ensure_ascii=False)
        except ValueError:
            arguments = str(request.tool_call.arguments)
        body = f"[bold]{escape(request.tool_name)}[/bold]: {escape(request.description)}"
        if arguments and arguments != "{}":
            body += "\n\n" + escape(arguments[:2000])
        console.print(Panel(body, title="Permission required", border_style="yellow"))
        answer = Prompt.ask(
            "Allow? [y] once, [a] always this session, [n] deny",
            choices=list(_DECISIONS),
            default="y",
            console=console,
        )
        return _DECISIONS[answer]

    async def request(self, request: PermissionRequest) -> PermissionDecision:
        self.ui.pause_status()
        try:
            return await asyncio.to_thread(self._ask, request)
        except asyncio.CancelledError:
            # The reader thread keeps waiting for a line; its answer is dropped.
            self.ui.print_hint("Interrupted. Press Enter to dismiss the prompt.")
            raise
        finally:
            self.ui.resume_status()


class TerminalUI(ConversationHooks):
    """Renders conversation entries with rich."""

    def __init__(self, config: Config | None = None, console: Console | None = None):
        self.config = config or Config()
        self.console = console or Console(no_color=not self.config.ui.colors, highlight=False)
        self.permission_prompt = RichPermissionPrompt(self)
        self._entries: dict[str, ConversationEntry] = {}
        self._status: Status | None = None

    def print_welcome(self) -> None:
        self.console.print(f"[bold]CodeClaw[/bold] v{__version__}")
        self.console.print("Type your request, or /help for commands. Ctrl-C interrupts a running turn.\n")

    def read_input(self) -> str:
        """Blocking read of one line of input."""
        return self.console.input("[bold cyan]> [/bold cyan]")

    def print_log_line(self, line: str) -> None:
        self.console.print(f"[dim]{escape(line)}[/dim]")

    def print_hint(self, text: str) -> None:
        self.console.print(f"[dim]{escape(text)}[/dim]")

    # Spinner

    def pause_status(self) -> None:
        if self._status is not None:
            self._status.stop()

    def resume_status(self) -> None:
        if self._status is not None:
            self._status.start()

    # ConversationHooks

    def on_entry(self, entry: ConversationEntry) -> str:
        if entry.type is EntryType.ASSISTANT:
            if entry.status is ToolCallStatus.ERROR:
                self.console.print(f"[yellow]{escape(entry.content)}[/yellow]")
            else:
                self.console.print(Markdown(entry.content))
        elif entry.type is EntryType.TOOL:
            # Only tool entries get their status patched later.
            self._entries[entry.id] = entry
            mark = _STATUS_MARKS.get(entry.status or ToolCallStatus.RUNNING, "")
            self.console.print(mark, Markdown(entry.content))
        elif entry.type is EntryType.COMMAND:
            self.console.print(f"[dim]{escape(entry.content)}[/dim]")
        return entry.id

    def on_entry_status(self, entry_id: str, status: ToolCallStatus) -> None:
        if status is ToolCallStatus.RUNNING:
            return
        # A finished entry is never patched again.
        entry = self._entries.pop(entry_id, None)
        if entry is None:
            return
        self.console.print(f"  {_STATUS_MARKS[status]} [dim]{escape(entry.content)}[/dim]")

    def on_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def on_loading(self, loading: bool) -> None:
        if loading:
            if self._status is None:
                self._status = self.console.status("Thinking...")
                self._status.start()
            return
        if self._status is not None:
            self._status.stop()
            self._status = None

    def on_token_progress(self, completion_tokens: int) -> None:
        if self._status is not None:
            self._status.update(f"Thinking... ({completion_tokens} tokens)")

    def on_usage(self, model: str, usage: Usage) -> None:
        if not self.config.ui.show_tokens:
            return
        self.console.print(
            f"[dim]Tokens: {usage.prompt_tokens} + {usage.completion_tokens} = {usage.total_tokens}[/dim]"
        )
