"""Tool permission gate with a session-scoped decision cache."""

import asyncio
import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol, Sequence
from urllib.parse import urlparse

from codeclaw.config import FingerprintFamily, PermissionsConfig
from codeclaw.llm import Message, ToolCall
from codeclaw.logging import get_logger
from codeclaw.tool_executor import validate_tool_calls

log = get_logger(__name__)

REJECTION_ACKNOWLEDGMENT = "Tool execution was rejected by user."


class PermissionDecision(str, Enum):
    """Operator answer to a permission prompt."""

    ONCE = "once"
    SESSION = "session"
    DENY = "deny"


@dataclass(frozen=True)
class PermissionRequest:
    """What the operator is asked to approve."""

    tool_name: str
    tool_call: ToolCall
    description: str
    fingerprint: str


class PermissionPrompt(Protocol):
    """Interactive source of permission decisions."""

    async def request(self, request: PermissionRequest) -> PermissionDecision: ...


class PermissionCache:
    """Fingerprints approved for the rest of the session. Never persisted."""

    def __init__(self) -> None:
        self._approved: set[str] = set()
        self._lock = asyncio.Lock()

    async def has(self, fingerprint: str) -> bool:
        async with self._lock:
            return fingerprint in self._approved

    async def remember(self, fingerprint: str) -> None:
        async with self._lock:
            self._approved.add(fingerprint)

    async def clear(self) -> None:
        async with self._lock:
            self._approved.clear()

    def __len__(self) -> int:
        return len(self._approved)


def _normalize_tool_name(value: str) -> str:
    return str(value or "").strip().lower()


def _family_for(
    tool_name: str,
    families: dict[str, FingerprintFamily],
) -> tuple[str, FingerprintFamily] | None:
    for family_name, family in families.items():
        if tool_name in {_normalize_tool_name(item) for item in family.tools}:
            return family_name, family
    return None


def _command_prefix(command: str, words: int) -> str:
    try:
        tokens = shlex.split(command)
    except ValueError:
        tokens = command.split()
    return " ".join(tokens[: max(1, words)])


def _hostname(url: str) -> str:
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    return host or url


def fingerprint(call: ToolCall, families: dict[str, FingerprintFamily]) -> str:
    """Collapse a tool call into the resource key used for session approvals.

    Calls in the same family that touch the same resource share a key, so
    approving one for the session also covers the others.
    """
    tool_name = _normalize_tool_name(call.name)
    generic = f"{tool_name}:generic"

    match = _family_for(tool_name, families)
    if match is None:
        return generic
    family_name, family = match
    if family.strategy == "tool":
        return f"{family_name}:{tool_name}"

    try:
        arguments = call.parsed_arguments()
    except ValueError:
        return generic

    value = ""
    for key in family.argument_keys:
        raw = arguments.get(key)
        if isinstance(raw, str) and raw.strip():
            value = raw.strip()
            break
    if not value:
        return generic

    if family.strategy == "path":
        resource = os.path.abspath(value)
    elif family.strategy == "directory":
        resource = os.path.dirname(os.path.abspath(value))
    elif family.strategy == "hostname":
        resource = _hostname(value)
    else:
        resource = _command_prefix(value, family.command_words)
    return f"{family_name}:{resource}"


def rejection_messages(calls: Sequence[ToolCall]) -> list[Message]:
    """Tool results rejecting every call in the batch, plus an acknowledgment."""
    messages = [
        Message.tool(call.id, f"User rejected {call.name}", tool_name=call.name)
        for call in calls
    ]
    messages.append(Message.assistant(REJECTION_ACKNOWLEDGMENT))
    return messages


@dataclass
class GateResult:
    """Outcome of checking one batch."""

    approved: bool
    rejections: list[Message] = field(default_factory=list)
    denied_tool: str | None = None

    @property
    def error(self) -> str | None:
        if self.approved:
            return None
        return f"User rejected {self.denied_tool}"


class PermissionGate:
    """Approve or reject a batch of tool calls as a unit.

    Calls are checked one at a time in order. The first denial stops
    prompting and rejects every call in the batch. Without a prompt every
    call is approved.
    """

    def __init__(
        self,
        prompt: PermissionPrompt | None = None,
        config: PermissionsConfig | None = None,
        describe: Callable[[str], str] | None = None,
        cache: PermissionCache | None = None,
    ):
        self.config = config or PermissionsConfig()
        self.prompt = prompt if self.config.enabled else None
        self.cache = cache or PermissionCache()
        self._describe = describe
        self._auto_approve = {_normalize_tool_name(name) for name in self.config.auto_approve}

    def describe(self, tool_name: str) -> str:
        if self._describe is not None:
            description = self._describe(tool_name)
            if description:
                return description
        return f"Execute {tool_name} tool"

    async def check(self, calls: Sequence[ToolCall]) -> GateResult:
        """Check a batch.

        Raises:
            ToolCallValidationError if any call lacks an id or name
        """
        validate_tool_calls(calls)
        if self.prompt is None:
            return GateResult(approved=True)

        for call in calls:
            if _normalize_tool_name(call.name) in self._auto_approve:
                continue

            key = fingerprint(call, self.config.families)
            if await self.cache.has(key):
                log.debug("Permission cached for session", tool=call.name, fingerprint=key)
                continue

            request = PermissionRequest(
                tool_name=call.name,
                tool_call=call,
                description=self.describe(call.name),
                fingerprint=key,
            )
            decision = PermissionDecision(await self.prompt.request(request))
            log.info("Permission decision", tool=call.name, decision=decision.value, fingerprint=key)

            if decision is PermissionDecision.DENY:
                return GateResult(
                    approved=False,
                    rejections=rejection_messages(calls),
                    denied_tool=call.name,
                )
            if decision is PermissionDecision.SESSION:
                await self.cache.remember(key)

        return GateResult(approved=True)
