"""Turn loop: request, extract tool calls, gate, execute, repeat."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

import structlog

from codeclaw.exceptions import RequestCancelledError, ToolCallValidationError
from codeclaw.hooks import ConversationEntry, ConversationHooks, EntryType, ToolCallStatus
from codeclaw.llm import Message, ToolCall, UsageCounters
from codeclaw.logging import get_logger
from codeclaw.permissions import PermissionGate
from codeclaw.request_executor import RequestExecutor
from codeclaw.streaming import until_cancelled
from codeclaw.tool_executor import ToolExecutor, interrupted_tool_messages

log = get_logger(__name__)

INTERRUPTED_ACKNOWLEDGMENT = "Process interrupted by user."
INVALID_TOOL_CALL_ERROR = "Invalid tool call format: missing function name or ID"


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"
    INTERRUPTED = "interrupted"
    DENIED = "denied"


@dataclass
class TurnOutcome:
    """How a request-turn ended and what it added to the transcript."""

    status: TurnStatus
    messages: list[Message] = field(default_factory=list)
    error: str | None = None
    rounds: int = 0

    @property
    def ok(self) -> bool:
        return self.status is TurnStatus.COMPLETED


class TodoProvider(Protocol):
    """Source of the model's current task list."""

    def current_todos(self) -> Sequence[Any]: ...


def todo_reminder(todos: Sequence[Any]) -> str | None:
    """Context block listing outstanding todos, or None when there are none."""
    outstanding = [todo for todo in todos if getattr(todo, "status", "") != "completed"]
    if not outstanding:
        return None
    lines = [f"- [{todo.status}] {todo.content}" for todo in outstanding]
    return (
        "\n\n<system-reminder>\n"
        "Your todo list has outstanding tasks. Keep it up to date with todo_write:\n"
        + "\n".join(lines)
        + "\n</system-reminder>"
    )


def augment_last_user_message(messages: Sequence[Message], extra: str | None) -> list[Message]:
    """Copy of ``messages`` with ``extra`` appended to the last user message only."""
    payload = list(messages)
    if not extra:
        return payload
    for position in range(len(payload) - 1, -1, -1):
        if payload[position].role == "user":
            payload[position] = payload[position].with_appended_text(extra)
            break
    return payload


def extract_tool_calls(messages: Sequence[Message]) -> tuple[list[ToolCall], str]:
    """Collect tool calls and display text from assistant messages.

    Raises:
        ToolCallValidationError if any call lacks an id or name; the whole
        response is rejected so no call is left without a result
    """
    calls: list[ToolCall] = []
    texts: list[str] = []
    for message in messages:
        text = message.text()
        if text:
            texts.append(text)
        for call in message.tool_calls:
            if not call.is_well_formed():
                raise ToolCallValidationError(INVALID_TOOL_CALL_ERROR)
            calls.append(call)
    return calls, "\n".join(texts)


class ConversationOrchestrator:
    """Owns the transcript and usage counters and drives request-turns.

    The turn loop is iterative: every round sends the transcript, appends
    the reply and, when it carries tool calls, the tool results. The loop
    stops when the model answers without tool calls, on error, on denial,
    on interruption or after ``max_rounds`` rounds.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        registry: Any,
        hooks: ConversationHooks | None = None,
        gate: PermissionGate | None = None,
        todo_provider: TodoProvider | None = None,
        max_rounds: int = 50,
        system_prompt: str | None = None,
        session_id: str = "",
    ):
        self.executor = executor
        self.registry = registry
        self.hooks = hooks or ConversationHooks()
        self.gate = gate or PermissionGate(
            prompt=self.hooks.permission_prompt,
            describe=getattr(registry, "describe", None),
        )
        self.tool_executor = ToolExecutor(registry, self.hooks)
        self.todo_provider = todo_provider
        self.max_rounds = max(1, int(max_rounds))
        self.session_id = session_id
        self.usage = UsageCounters()

        self._transcript: list[Message] = []
        self._system_prompt = system_prompt
        self._cancel_event: asyncio.Event | None = None
        self._interrupt_requested = False
        self._turns = 0
        self.reset()

    @property
    def transcript(self) -> tuple[Message, ...]:
        """Read-only view of the conversation so far."""
        return tuple(self._transcript)

    def reset(self, system_prompt: str | None = None) -> None:
        """Drop history, keeping only the system prompt."""
        if system_prompt is not None:
            self._system_prompt = system_prompt
        self._transcript = []
        if self._system_prompt:
            self._transcript.append(Message.system(self._system_prompt))

    def interrupt(self) -> None:
        """Ask the running turn to stop at its next safe point."""
        self._interrupt_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    def _interruption_pending(self) -> bool:
        return self._interrupt_requested or self.hooks.interruption_requested()

    def _append(self, *messages: Message) -> None:
        self._transcript.extend(messages)

    def _request_payload(self) -> list[Message]:
        reminder = None
        if self.todo_provider is not None:
            reminder = todo_reminder(self.todo_provider.current_todos())
        return augment_last_user_message(self._transcript, reminder)

    def _interrupt(self, open_calls: Sequence[ToolCall], rounds: int) -> TurnOutcome:
        log.info("Turn interrupted", open_calls=len(open_calls))
        self._append(*interrupted_tool_messages(open_calls))
        self._append(Message.assistant(INTERRUPTED_ACKNOWLEDGMENT))
        self.hooks.on_entry(
            ConversationEntry(
                type=EntryType.ASSISTANT,
                content=INTERRUPTED_ACKNOWLEDGMENT,
                status=ToolCallStatus.ERROR,
            )
        )
        return TurnOutcome(status=TurnStatus.INTERRUPTED, error=INTERRUPTED_ACKNOWLEDGMENT, rounds=rounds)

    def _fail(self, message: str, rounds: int, status: TurnStatus = TurnStatus.ERROR) -> TurnOutcome:
        self.hooks.on_error(message)
        return TurnOutcome(status=status, error=message, rounds=rounds)

    async def run_turn(self, user_text: str) -> TurnOutcome:
        """Append a user message and run rounds until the model is done."""
        self._turns += 1
        self._interrupt_requested = False
        start = len(self._transcript)
        self._append(Message.user(user_text))

        with structlog.contextvars.bound_contextvars(session_id=self.session_id, turn=self._turns):
            self.hooks.on_loading(True)
            try:
                outcome = await self._run_rounds()
            finally:
                self._cancel_event = None
                self.hooks.on_loading(False)

        outcome.messages = list(self._transcript[start:])
        log.info("Turn finished", status=outcome.status.value, rounds=outcome.rounds)
        return outcome

    async def _run_rounds(self) -> TurnOutcome:
        open_calls: list[ToolCall] = []
        rounds = 0
        try:
            for rounds in range(1, self.max_rounds + 1):
                # A fresh cancel event per request; never reused.
                cancel_event = asyncio.Event()
                self._cancel_event = cancel_event
                if self._interrupt_requested:
                    cancel_event.set()

                result = await self.executor.execute(
                    self._request_payload(),
                    self.registry.get_definitions(),
                    cancel_event=cancel_event,
                    on_token_progress=self.hooks.on_token_progress,
                )
                if result.cancelled:
                    return self._interrupt([], rounds)
                if result.error:
                    return self._fail(result.error, rounds)
                if result.usage is not None:
                    self.usage.add(result.model, result.usage)
                    self.hooks.on_usage(result.model, result.usage)

                try:
                    calls, text = extract_tool_calls(result.messages)
                except ToolCallValidationError as e:
                    log.warning("Rejected malformed tool call", error=str(e))
                    return self._fail(str(e), rounds)

                if text:
                    self.hooks.on_entry(ConversationEntry(type=EntryType.ASSISTANT, content=text))
                self._append(*result.messages)
                open_calls = calls

                if self._interruption_pending():
                    return self._interrupt(open_calls, rounds)
                if not calls:
                    return TurnOutcome(status=TurnStatus.COMPLETED, rounds=rounds)

                try:
                    gate_result = await until_cancelled(self.gate.check(calls), cancel_event)
                except RequestCancelledError:
                    return self._interrupt(open_calls, rounds)
                if not gate_result.approved:
                    self._append(*gate_result.rejections)
                    open_calls = []
                    return self._fail(gate_result.error or "Tool execution rejected", rounds, TurnStatus.DENIED)

                batch = await self.tool_executor.execute_batch(calls)
                self._append(*batch.tool_results)
                open_calls = []
                if not batch.success:
                    return self._fail(batch.error or "Tool execution failed", rounds)

                if self._interruption_pending():
                    return self._interrupt([], rounds)
                # Tool results are in; continue with another round.

            return self._fail(f"Tool round limit reached ({self.max_rounds})", rounds)
        except Exception as e:
            log.exception("Unexpected error in conversation handling")
            if open_calls:
                self._append(
                    *(Message.tool(call.id, f"Error: {e}", tool_name=call.name) for call in open_calls)
                )
            return self._fail(f"Unexpected error in conversation handling: {e}", rounds)
