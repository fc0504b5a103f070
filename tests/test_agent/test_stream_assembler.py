import asyncio

import pytest

from codeclaw.exceptions import RequestCancelledError
from codeclaw.llm import ChoiceDelta, PartialUpdate, ToolCallDelta, Usage
from codeclaw.streaming import (
    ERROR_BACKEND,
    ERROR_NO_RESPONSE,
    ERROR_UNEXPECTED_FORMAT,
    KIND_BACKEND,
    KIND_NO_RESPONSE,
    KIND_UNEXPECTED_FORMAT,
    StreamAssembler,
    assemble,
)


def _text(content: str, index: int = 0) -> PartialUpdate:
    return PartialUpdate(choices=(ChoiceDelta(index=index, content=content),))


def _call(index: int, id: str | None = None, name: str | None = None, arguments: str | None = None) -> PartialUpdate:
    return PartialUpdate(
        choices=(ChoiceDelta(index=0, tool_calls=(ToolCallDelta(index=index, id=id, name=name, arguments=arguments),)),)
    )


async def _stream(*updates: PartialUpdate):
    for update in updates:
        yield update


def _assemble_text(*deltas: str) -> str:
    assembler = StreamAssembler()
    for delta in deltas:
        assembler.feed(_text(delta))
    return assembler.result().messages[0].text()


def test_content_deltas_concatenate_in_event_order():
    assert _assemble_text("Hel", "lo", " world") == "Hello world"
    assert _assemble_text("ab", "cd") != _assemble_text("cd", "ab")


def test_tool_call_arguments_are_appended_across_events():
    assembler = StreamAssembler()
    assembler.feed(_call(0, id="call_1", name="edit", arguments="{\"a\":"))
    assembler.feed(_call(0, arguments="1}"))

    result = assembler.result()
    call = result.messages[0].tool_calls[0]
    assert call.arguments == "{\"a\":1}"
    assert call.parsed_arguments() == {"a": 1}


def test_tool_call_id_and_name_are_never_blanked():
    assembler = StreamAssembler()
    assembler.feed(_call(0, id="call_1", name="read"))
    assembler.feed(_call(0, id="", name="", arguments="{}"))

    call = assembler.result().messages[0].tool_calls[0]
    assert (call.id, call.name, call.arguments) == ("call_1", "read", "{}")


def test_tool_calls_are_merged_by_index():
    assembler = StreamAssembler()
    assembler.feed(_call(1, id="b", name="grep"))
    assembler.feed(_call(0, id="a", name="glob"))
    assembler.feed(_call(1, arguments="{\"pattern\": \"x\"}"))

    calls = assembler.result().messages[0].tool_calls
    assert [call.id for call in calls] == ["a", "b"]
    assert calls[1].arguments == "{\"pattern\": \"x\"}"


def test_error_finish_reason_is_terminal():
    assembler = StreamAssembler()
    assert assembler.feed(_text("partial")) is True
    error_update = PartialUpdate(choices=(ChoiceDelta(index=0, content="more", finish_reason="error"),))
    assert assembler.feed(error_update) is False
    assert assembler.feed(_text("ignored")) is False

    result = assembler.result()
    assert result.messages == []
    assert result.error == ERROR_BACKEND
    assert result.error_kind == KIND_BACKEND


def test_zero_choices_is_no_response():
    result = StreamAssembler().result()
    assert result.error == ERROR_NO_RESPONSE
    assert result.error_kind == KIND_NO_RESPONSE


def test_all_empty_choices_is_unexpected_format():
    assembler = StreamAssembler()
    assembler.feed(PartialUpdate(choices=(ChoiceDelta(index=0, finish_reason="stop"),)))

    result = assembler.result()
    assert result.error == ERROR_UNEXPECTED_FORMAT
    assert result.error_kind == KIND_UNEXPECTED_FORMAT


def test_token_progress_is_monotonic():
    progress: list[int] = []
    assembler = StreamAssembler(on_token_progress=progress.append)
    for completion in (3, 3, 2, 7):
        assembler.feed(
            PartialUpdate(
                choices=(ChoiceDelta(index=0, content="x"),),
                usage=Usage(prompt_tokens=1, completion_tokens=completion, total_tokens=completion + 1),
            )
        )

    assert progress == [3, 7]
    assert assembler.result().usage == Usage(prompt_tokens=1, completion_tokens=7, total_tokens=8)


@pytest.mark.asyncio
async def test_assemble_stops_consuming_after_error():
    consumed: list[str] = []

    async def stream():
        for update in (_text("a"), PartialUpdate(choices=(ChoiceDelta(index=0, finish_reason="error"),)), _text("b")):
            consumed.append("event")
            yield update

    result = await assemble(stream())
    assert result.error == ERROR_BACKEND
    assert len(consumed) == 2


@pytest.mark.asyncio
async def test_assemble_raises_when_cancelled():
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(RequestCancelledError):
        await assemble(_stream(_text("a")), cancel_event=cancel_event)


@pytest.mark.asyncio
async def test_assemble_returns_messages_per_choice():
    result = await assemble(_stream(_text("first", index=0), _text("second", index=1)))
    assert [message.text() for message in result.messages] == ["first", "second"]
    assert result.ok


@pytest.mark.asyncio
async def test_assemble_abandons_a_stalled_stream_when_cancelled():
    cancel_event = asyncio.Event()
    closed = asyncio.Event()

    async def stalled():
        try:
            await asyncio.sleep(3)
            yield _text("too late")
        finally:
            closed.set()

    loop = asyncio.get_running_loop()
    loop.call_later(0.05, cancel_event.set)
    started = loop.time()

    with pytest.raises(RequestCancelledError):
        await assemble(stalled(), cancel_event=cancel_event)

    assert loop.time() - started < 1.0
    assert closed.is_set()
