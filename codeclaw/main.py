"""Main entry point for CodeClaw."""

import asyncio
import signal
import sys
from typing import Optional

import typer

from codeclaw import __version__
from codeclaw.cli import TerminalUI
from codeclaw.config import Config, set_config
from codeclaw.hooks import ConversationEntry, ConversationHooks, EntryType
from codeclaw.llm import ChatBackend, create_backend
from codeclaw.logging import configure_logging, log, set_system_log_sink
from codeclaw.session import ConversationSession

app = typer.Typer(
    help="CodeClaw - an interactive coding assistant for your terminal",
    add_completion=False,
)


def load_config(config_path: str = "", model: str = "", provider: str = "", verbose: bool = False) -> Config:
    """Load config from YAML and environment, then apply command-line overrides."""
    config = Config.from_yaml(config_path or None)
    if model:
        config.model.model = model
    if provider:
        config.model.provider = provider
    if verbose:
        config.logging.level = "DEBUG"
    set_config(config)
    return config


def backend_from_config(config: Config) -> ChatBackend:
    return create_backend(
        provider=config.model.provider,
        model=config.model.model,
        api_key=config.model.api_key or None,
        base_url=config.model.base_url or None,
        temperature=config.model.temperature,
        max_tokens=config.model.max_tokens,
        timeout=config.request.timeout,
    )


class PrintModeHooks(ConversationHooks):
    """Collects assistant text and errors for a single unattended turn."""

    def __init__(self) -> None:
        self.texts: list[str] = []
        self.errors: list[str] = []

    def on_entry(self, entry: ConversationEntry) -> str:
        if entry.type is EntryType.ASSISTANT:
            self.texts.append(entry.content)
        return entry.id

    def on_error(self, message: str) -> None:
        self.errors.append(message)


async def run_print_mode(config: Config, prompt: str, backend: ChatBackend | None = None) -> int:
    """Run one turn without prompts. Returns the process exit code."""
    hooks = PrintModeHooks()
    session = ConversationSession(backend or backend_from_config(config), hooks=hooks, config=config)
    async with session:
        outcome = await session.submit(prompt)

    if hooks.texts:
        print("\n".join(hooks.texts))
    errors = list(hooks.errors)
    if outcome.error and outcome.error not in errors:
        errors.append(outcome.error)
    for error in errors:
        print(f"Error: {error}", file=sys.stderr)
    return 1 if errors or not outcome.ok else 0


async def run_interactive(config: Config, ui: TerminalUI) -> None:
    """Read-eval loop until /exit or end of input."""
    loop = asyncio.get_running_loop()
    async with ConversationSession(backend_from_config(config), hooks=ui, config=config) as session:

        def on_sigint() -> None:
            if session.busy:
                session.interrupt()
            else:
                ui.print_hint("Press Ctrl-D or type /exit to quit.")

        try:
            loop.add_signal_handler(signal.SIGINT, on_sigint)
        except (NotImplementedError, RuntimeError):
            log.debug("SIGINT handler unavailable; Ctrl-C will not interrupt turns")

        ui.print_welcome()
        try:
            while not session.should_exit:
                try:
                    text = await asyncio.to_thread(ui.read_input)
                except EOFError:
                    break
                await session.submit(text)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    print_prompt: Optional[str] = typer.Option(
        None,
        "-p",
        "--print",
        help="Run one prompt without interaction and print the answer ('-' reads stdin)",
    ),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "--provider", help="Override provider"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start CodeClaw."""
    if ctx.invoked_subcommand is not None:
        return

    cfg = load_config(config, model, provider, verbose)

    if print_prompt is not None:
        prompt = sys.stdin.read() if print_prompt == "-" else print_prompt
        if not prompt.strip():
            typer.echo("Error: empty prompt", err=True)
            raise typer.Exit(code=1)
        configure_logging(cfg)
        raise typer.Exit(code=asyncio.run(run_print_mode(cfg, prompt)))

    ui = TerminalUI(cfg)
    set_system_log_sink(ui.print_log_line)
    configure_logging(cfg)
    asyncio.run(run_interactive(cfg, ui))


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"CodeClaw v{__version__}")


if __name__ == "__main__":
    app()
