"""Reassemble streamed backend updates into complete assistant messages."""

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from codeclaw.exceptions import RequestCancelledError
from codeclaw.llm import Message, PartialUpdate, ToolCall, Usage
from codeclaw.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

ERROR_BACKEND = "An error occurred during processing."
ERROR_NO_RESPONSE = "No response from backend."
ERROR_UNEXPECTED_FORMAT = "Unexpected response format from backend."

# error_kind values on AssemblyResult
KIND_BACKEND = "backend"
KIND_NO_RESPONSE = "no_response"
KIND_UNEXPECTED_FORMAT = "unexpected_format"


@dataclass
class _ToolCallBuffer:
    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class _ChoiceBuffer:
    content: str = ""
    tool_calls: dict[int, _ToolCallBuffer] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls

    def to_message(self) -> Message:
        calls = tuple(
            ToolCall(id=buf.id, name=buf.name, arguments=buf.arguments, index=buf.index)
            for _, buf in sorted(self.tool_calls.items())
        )
        return Message.assistant(content=self.content, tool_calls=calls)


@dataclass
class AssemblyResult:
    """Outcome of one assembled stream."""

    messages: list[Message]
    usage: Usage | None = None
    model: str = ""
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StreamAssembler:
    """Buffer per-choice deltas until the stream ends or errors.

    Content text is concatenated in arrival order. Tool call fragments are
    merged by their index: ids and names are only overwritten by non-empty
    values, argument fragments are appended.
    """

    def __init__(self, on_token_progress: Callable[[int], None] | None = None):
        self._choices: dict[int, _ChoiceBuffer] = {}
        self._errored = False
        self._usage: Usage | None = None
        self._model = ""
        self._completion_tokens_seen = 0
        self._on_token_progress = on_token_progress

    @property
    def errored(self) -> bool:
        return self._errored

    @property
    def usage(self) -> Usage | None:
        return self._usage

    def feed(self, update: PartialUpdate) -> bool:
        """Apply one update. Returns False once the stream is errored."""
        if self._errored:
            return False
        if update.model:
            self._model = update.model

        if any(delta.finish_reason == "error" for delta in update.choices):
            log.warning("Backend signalled error in stream", model=self._model)
            self._errored = True
            self._choices.clear()
            return False

        for delta in update.choices:
            buffer = self._choices.setdefault(delta.index, _ChoiceBuffer())
            if delta.content:
                buffer.content += delta.content
            for fragment in delta.tool_calls:
                call = buffer.tool_calls.get(fragment.index)
                if call is None:
                    call = _ToolCallBuffer(index=fragment.index)
                    buffer.tool_calls[fragment.index] = call
                if fragment.id:
                    call.id = fragment.id
                if fragment.name:
                    call.name = fragment.name
                if fragment.arguments:
                    call.arguments += fragment.arguments

        if update.usage is not None:
            self._observe_usage(update.usage)
        return True

    def _observe_usage(self, usage: Usage) -> None:
        self._usage = usage
        if usage.completion_tokens <= self._completion_tokens_seen:
            return
        self._completion_tokens_seen = usage.completion_tokens
        if self._on_token_progress is None:
            return
        try:
            self._on_token_progress(usage.completion_tokens)
        except Exception as e:
            log.debug("Token progress callback failed", error=str(e))

    def result(self) -> AssemblyResult:
        """Finalize buffered choices into assistant messages."""
        if self._errored:
            return AssemblyResult(messages=[], model=self._model, error=ERROR_BACKEND, error_kind=KIND_BACKEND)
        if not self._choices:
            return AssemblyResult(
                messages=[], model=self._model, error=ERROR_NO_RESPONSE, error_kind=KIND_NO_RESPONSE
            )

        messages = [
            buffer.to_message()
            for _, buffer in sorted(self._choices.items())
            if not buffer.is_empty()
        ]
        if not messages:
            return AssemblyResult(
                messages=[],
                model=self._model,
                error=ERROR_UNEXPECTED_FORMAT,
                error_kind=KIND_UNEXPECTED_FORMAT,
            )
        return AssemblyResult(messages=messages, usage=self._usage, model=self._model)


async def until_cancelled(awaitable: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
    """Await ``awaitable`` unless ``cancel_event`` is set first.

    The loser of the race is cancelled and awaited.

    Raises:
        RequestCancelledError if the event wins
    """
    task = asyncio.ensure_future(awaitable)
    if cancel_event is None:
        return await task
    if cancel_event.is_set():
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise RequestCancelledError()

    waiter = asyncio.ensure_future(cancel_event.wait())
    finished = False
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finished = task in done
    finally:
        waiter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter
        if not finished:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
    if not finished:
        raise RequestCancelledError()
    return task.result()


async def _next_update(stream: AsyncIterator[PartialUpdate]) -> PartialUpdate | None:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


async def assemble(
    stream: AsyncIterator[PartialUpdate],
    cancel_event: asyncio.Event | None = None,
    on_token_progress: Callable[[int], None] | None = None,
) -> AssemblyResult:
    """Consume a backend stream to completion.

    Each wait for the next update races the cancel event, so a stalled
    backend does not delay cancellation.

    Raises:
        RequestCancelledError if ``cancel_event`` is set while streaming
    """
    assembler = StreamAssembler(on_token_progress=on_token_progress)
    try:
        while True:
            update = await until_cancelled(_next_update(stream), cancel_event)
            if update is None:
                break
            if not assembler.feed(update):
                break
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError()
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
    return assembler.result()
