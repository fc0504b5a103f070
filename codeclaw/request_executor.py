"""Single backend request with bounded retries on transport failure."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from codeclaw.exceptions import LLMAPIError, RequestCancelledError, TransportError
from codeclaw.llm import ChatBackend, Message, ToolDefinition, Usage
from codeclaw.logging import get_logger
from codeclaw.streaming import assemble

log = get_logger(__name__)

KIND_API = "api"
KIND_TRANSPORT = "transport"


@dataclass
class RequestResult:
    """Assembled response, or why there is none."""

    messages: list[Message] = field(default_factory=list)
    usage: Usage | None = None
    model: str = ""
    error: str | None = None
    error_kind: str | None = None
    cancelled: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


class RequestExecutor:
    """Send a transcript to the backend and assemble the streamed reply.

    Transport failures are retried up to ``max_attempts`` with a linear
    backoff of ``attempt * backoff_seconds``. Errors the backend chooses to
    return are never retried. Setting the cancel event aborts immediately,
    including during a backoff wait.
    """

    def __init__(
        self,
        backend: ChatBackend,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.backend = backend
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self._sleep = sleep or asyncio.sleep

    @staticmethod
    async def _cancel_task(task: asyncio.Future[Any]) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _backoff(self, attempt: int, cancel_event: asyncio.Event | None) -> bool:
        """Wait before the next attempt. Returns True if cancelled meanwhile."""
        delay = attempt * self.backoff_seconds
        if cancel_event is None:
            await self._sleep(delay)
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self._cancel_task(sleeper)
            await self._cancel_task(waiter)
        return cancel_event.is_set()

    def _cancelled(self, attempts: int) -> RequestResult:
        log.info("Backend request cancelled", attempts=attempts)
        return RequestResult(model=self.backend.model, cancelled=True, attempts=attempts)

    async def execute(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        cancel_event: asyncio.Event | None = None,
        on_token_progress: Callable[[int], None] | None = None,
    ) -> RequestResult:
        """Run the request, retrying transport errors."""
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(attempt - 1)

            try:
                assembled = await assemble(
                    self.backend.stream(messages, tools, cancel_event),
                    cancel_event=cancel_event,
                    on_token_progress=on_token_progress,
                )
            except RequestCancelledError:
                return self._cancelled(attempt)
            except (TransportError, httpx.TransportError) as e:
                last_error = e
                log.warning(
                    "Backend request failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                )
                if attempt < self.max_attempts and await self._backoff(attempt, cancel_event):
                    return self._cancelled(attempt)
                continue
            except LLMAPIError as e:
                log.error("Backend rejected request", status_code=e.status_code, error=str(e))
                return RequestResult(
                    model=self.backend.model,
                    error=str(e),
                    error_kind=KIND_API,
                    attempts=attempt,
                )

            return RequestResult(
                messages=assembled.messages,
                usage=assembled.usage,
                model=self.backend.model or assembled.model,
                error=assembled.error,
                error_kind=assembled.error_kind,
                attempts=attempt,
            )

        return RequestResult(
            model=self.backend.model,
            error=f"Request failed after {self.max_attempts} attempts: {last_error}",
            error_kind=KIND_TRANSPORT,
            attempts=self.max_attempts,
        )
