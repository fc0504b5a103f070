"""Slash commands typed at the prompt."""

from dataclasses import dataclass

from codeclaw.llm import UsageCounters

COMMANDS: dict[str, str] = {
    "help": "Show available commands",
    "usage": "Show token usage statistics",
    "clear": "Clear the current session history",
    "exit": "Exit the application",
}
ALIASES: dict[str, str] = {
    "quit": "exit",
}


@dataclass
class CommandResult:
    """What a command asks the session to do."""

    output: str = ""
    clear_history: bool = False
    exit: bool = False
    known: bool = True


def is_command(text: str) -> bool:
    return text.strip().startswith("/")


def command_help(command: str) -> str:
    alias = next((name for name, target in ALIASES.items() if target == command), None)
    alias_label = f"(**/{alias}**) " if alias else ""
    return f"**/{command}** {alias_label}- {COMMANDS[command]}"


def handle_command(text: str, usage: UsageCounters) -> CommandResult:
    """Run a slash command.

    ``text`` is the raw input including the leading slash. Unknown commands
    are reported in the output rather than raised.
    """
    name = text.strip().lstrip("/").strip().lower()
    command = ALIASES.get(name, name)

    if command == "help":
        lines = [command_help(item) for item in COMMANDS]
        return CommandResult(output="**Available commands**: \n" + "\n".join(lines))
    if command == "usage":
        return CommandResult(output=usage.format())
    if command == "clear":
        return CommandResult(output="Conversation history cleared.", clear_history=True)
    if command == "exit":
        return CommandResult(output=usage.format(), exit=True)
    return CommandResult(
        output=f"Unknown command: {name}. Type /help for available commands.",
        known=False,
    )
