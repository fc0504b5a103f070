from codeclaw.commands import COMMANDS, command_help, handle_command, is_command
from codeclaw.llm import Usage, UsageCounters


def test_is_command_requires_leading_slash():
    assert is_command("/help")
    assert is_command("  /usage")
    assert not is_command("help")
    assert not is_command("path/to/file")


def test_help_lists_every_command_with_aliases():
    result = handle_command("/help", UsageCounters())

    for name in COMMANDS:
        assert f"**/{name}**" in result.output
    assert command_help("exit") == "**/exit** (**/quit**) - Exit the application"


def test_usage_reports_per_model_totals():
    usage = UsageCounters()
    assert handle_command("/usage", usage).output == "No usage data available."

    usage.add("m1", Usage(10, 5, 15))
    usage.add("m1", Usage(1, 1, 2))
    output = handle_command("/USAGE", usage).output

    assert "Model: m1" in output
    assert "Prompt Tokens: 11" in output
    assert "Total Tokens: 17" in output


def test_clear_and_exit_flags():
    usage = UsageCounters()

    assert handle_command("/clear", usage).clear_history is True
    exit_result = handle_command("/exit", usage)
    assert exit_result.exit is True
    assert handle_command("/quit", usage).exit is True


def test_unknown_command_is_reported_not_raised():
    result = handle_command("/nope", UsageCounters())

    assert result.known is False
    assert result.output == "Unknown command: nope. Type /help for available commands."
