"""Bash tool for executing shell commands."""

import asyncio
import os
import re
import shlex
from pathlib import Path
from typing import Any

from codeclaw.config import BashToolConfig
from codeclaw.logging import get_logger
from codeclaw.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_OUTPUT_CHARS = 30000

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}


def _split_shell_segments(command: str) -> list[list[str]]:
    """Tokenize a command and split it on control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    segments: list[list[str]] = []
    current: list[str] = []
    for token in lexer:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _segment_base_command(tokens: list[str]) -> str:
    """Executable of a segment, skipping wrappers and env assignments."""
    for token in tokens:
        token = token.strip()
        if not token or token in _SHELL_WRAPPER_TOKENS:
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            continue
        return token
    return ""


def blocked_pattern(command: str, blocked_patterns: list[str]) -> str | None:
    """Return the blocked pattern a command matches, or None.

    Patterns containing whitespace are matched against the start of each
    segment, plain words against each segment's base command, and symbol
    sequences against the command with spaces removed.
    """
    try:
        segments = _split_shell_segments(command)
    except ValueError:
        return None
    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [base for segment in segments if (base := _segment_base_command(segment))]

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        if re.search(r"\s", pattern):
            if any(text == pattern or text.startswith(pattern + " ") for text in segment_texts):
                return pattern
        elif re.fullmatch(r"[\w.-]+", pattern):
            if any(base == pattern or Path(base).name == pattern for base in base_commands):
                return pattern
        elif pattern in command.replace(" ", ""):
            return pattern
    return None


class BashTool(Tool):
    """Execute shell commands."""

    name = "bash"
    description = (
        "Execute a bash command and return its output and exit code. Use the "
        "directory argument instead of cd. Output is truncated when very long."
    )
    timeout_seconds = 30.0
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The bash command to execute",
            },
            "description": {
                "type": "string",
                "description": "Brief description of what the command does",
            },
            "directory": {
                "type": "string",
                "description": "Working directory (default: current directory)",
            },
            "timeout": {
                "type": "number",
                "description": "Timeout in seconds (optional, default from config)",
            },
        },
        "required": ["command"],
    }

    def __init__(self, config: BashToolConfig | None = None):
        self.config = config or BashToolConfig()
        self.timeout_seconds = float(self.config.timeout or 30)

    async def execute(
        self,
        command: str,
        description: str | None = None,
        directory: str | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Execute a shell command.

        Args:
            command: Shell command to execute
            description: Optional human-readable purpose
            directory: Optional working directory
            timeout: Optional timeout override

        Returns:
            ToolResult with command output
        """
        command = str(command or "").strip()
        if not command:
            return ToolResult.error("Error: Command is empty")

        matched = blocked_pattern(command, self.config.blocked)
        if matched:
            log.warning("Blocked unsafe command", command=command, pattern=matched)
            return ToolResult.error(f"Error: Command blocked: matches pattern {matched!r}")

        cwd = resolve_tool_path(directory or ".", kwargs)
        if not cwd.is_dir():
            return ToolResult.error(f"Error: Invalid directory: {directory}")

        effective_timeout = max(1.0, float(timeout if timeout is not None else self.timeout_seconds))

        try:
            log.info("Executing shell command", command=command, cwd=str(cwd), timeout=effective_timeout)
            process = await asyncio.create_subprocess_exec(
                "/bin/bash",
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=os.environ.copy(),
            )
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=effective_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return ToolResult.error(f"Error: Command timed out after {effective_timeout:g}s")
            except asyncio.CancelledError:
                process.kill()
                await process.wait()
                raise

        except OSError as e:
            log.error("Shell command failed", command=command, error=str(e))
            return ToolResult.error(f"Error: {e}")

        stdout_text = stdout.decode("utf-8", errors="replace").rstrip()
        stderr_text = stderr.decode("utf-8", errors="replace").rstrip()

        output = stdout_text
        if stderr_text:
            output += f"\n[stderr]\n{stderr_text}" if output else f"[stderr]\n{stderr_text}"
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + f"\n... [truncated, {len(output)} total chars]"

        exit_code = process.returncode
        if exit_code != 0:
            return ToolResult.error(f"{output or '[no output]'}\n[exit code {exit_code}]")
        return ToolResult.text(output or "[no output]")
