import asyncio

import httpx
import pytest

from codeclaw.exceptions import LLMAPIError, TransportError
from codeclaw.llm import ChatBackend, ChoiceDelta, Message, PartialUpdate, Usage
from codeclaw.request_executor import KIND_API, KIND_TRANSPORT, RequestExecutor


class _ScriptedBackend(ChatBackend):
    """Each call to stream() pops the next script item: an exception or a list of updates."""

    def __init__(self, *scripts, model: str = "m1"):
        self.model = model
        self.scripts = list(scripts)
        self.calls = 0

    async def stream(self, messages, tools=None, cancel_event=None):
        self.calls += 1
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        if isinstance(script, BaseException):
            raise script
        for update in script:
            yield update


class _Sleeps:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _reply(text: str = "done") -> list[PartialUpdate]:
    return [
        PartialUpdate(
            choices=(ChoiceDelta(index=0, content=text),),
            usage=Usage(prompt_tokens=1, completion_tokens=2, total_tokens=3),
        )
    ]


@pytest.mark.asyncio
async def test_transport_errors_are_retried_exactly_three_times():
    backend = _ScriptedBackend(TransportError("connection reset"))
    sleeps = _Sleeps()
    executor = RequestExecutor(backend, max_attempts=3, backoff_seconds=1.0, sleep=sleeps)

    result = await executor.execute([Message.user("hi")])

    assert backend.calls == 3
    assert result.attempts == 3
    assert result.error == "Request failed after 3 attempts: connection reset"
    assert result.error_kind == KIND_TRANSPORT
    assert sleeps.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_httpx_transport_errors_are_retried():
    backend = _ScriptedBackend(httpx.ReadTimeout("slow"), _reply("recovered"))
    executor = RequestExecutor(backend, sleep=_Sleeps())

    result = await executor.execute([Message.user("hi")])

    assert backend.calls == 2
    assert result.ok
    assert result.messages[0].text() == "recovered"


@pytest.mark.asyncio
async def test_api_errors_are_not_retried():
    backend = _ScriptedBackend(LLMAPIError("bad request", status_code=400))
    executor = RequestExecutor(backend, sleep=_Sleeps())

    result = await executor.execute([Message.user("hi")])

    assert backend.calls == 1
    assert result.error == "bad request"
    assert result.error_kind == KIND_API


@pytest.mark.asyncio
async def test_backend_signalled_error_is_not_retried():
    backend = _ScriptedBackend([PartialUpdate(choices=(ChoiceDelta(index=0, finish_reason="error"),))])
    executor = RequestExecutor(backend, sleep=_Sleeps())

    result = await executor.execute([Message.user("hi")])

    assert backend.calls == 1
    assert result.error == "An error occurred during processing."


@pytest.mark.asyncio
async def test_success_reports_usage_and_backend_model():
    backend = _ScriptedBackend(_reply(), model="devstral")
    executor = RequestExecutor(backend)

    result = await executor.execute([Message.user("hi")])

    assert result.ok
    assert result.model == "devstral"
    assert result.usage == Usage(prompt_tokens=1, completion_tokens=2, total_tokens=3)


@pytest.mark.asyncio
async def test_cancel_before_request_is_reported_distinctly():
    backend = _ScriptedBackend(_reply())
    executor = RequestExecutor(backend)
    cancel_event = asyncio.Event()
    cancel_event.set()

    result = await executor.execute([Message.user("hi")], cancel_event=cancel_event)

    assert result.cancelled is True
    assert result.error is None
    assert backend.calls == 0


@pytest.mark.asyncio
async def test_cancel_during_backoff_stops_retrying():
    backend = _ScriptedBackend(TransportError("down"))
    cancel_event = asyncio.Event()

    async def sleep(delay: float) -> None:
        cancel_event.set()
        await asyncio.sleep(3600)

    executor = RequestExecutor(backend, sleep=sleep)
    result = await asyncio.wait_for(
        executor.execute([Message.user("hi")], cancel_event=cancel_event),
        timeout=5,
    )

    assert result.cancelled is True
    assert backend.calls == 1


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_first_token_returns_promptly():
    class _StalledBackend(ChatBackend):
        model = "m1"

        async def stream(self, messages, tools=None, cancel_event=None):
            await asyncio.sleep(3)
            yield _reply()[0]

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, cancel_event.set)
    started = loop.time()

    result = await RequestExecutor(_StalledBackend()).execute([Message.user("hi")], cancel_event=cancel_event)

    assert result.cancelled is True
    assert loop.time() - started < 1.0
