"""Ollama backend - direct HTTP calls to the native Ollama chat API."""

import asyncio
import json
from typing import Any, AsyncIterator

import httpx

from codeclaw.exceptions import TransportError
from codeclaw.llm import (
    ChatBackend,
    ChoiceDelta,
    Message,
    PartialUpdate,
    ToolCallDelta,
    ToolDefinition,
    Usage,
    content_for_display,
    http_status_error,
    tool_to_wire,
)
from codeclaw.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


class OllamaBackend(ChatBackend):
    """Direct Ollama API backend."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float | None = None,
        max_tokens: int | None = None,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama backend.

        Args:
            model: Ollama model name (e.g., 'llama3.2', 'qwen3:32b')
            base_url: Ollama API base URL
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            api_key: Optional API key (Ollama usually doesn't need one locally)
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": content_for_display(msg.content)}
            if msg.role == "assistant" and msg.tool_calls:
                converted_calls = []
                for call in msg.tool_calls:
                    try:
                        arguments = call.parsed_arguments()
                    except ValueError:
                        arguments = {}
                    converted_calls.append({"function": {"name": call.name, "arguments": arguments}})
                entry["tool_calls"] = converted_calls
            if msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            result.append(entry)
        return result

    def _build_body(self, messages: list[Message], tools: list[ToolDefinition] | None) -> dict[str, Any]:
        options: dict[str, Any] = {"num_ctx": 65536}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens:
            options["num_predict"] = self.max_tokens

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": True,
            "options": options,
        }
        if tools:
            body["tools"] = [tool_to_wire(tool) for tool in tools]
        return body

    @staticmethod
    def parse_line(chunk: dict[str, Any], call_counter: list[int]) -> PartialUpdate:
        """Convert one NDJSON line into a PartialUpdate.

        Ollama sends whole tool calls in a single line and usually omits ids,
        so ids are synthesized from ``call_counter`` (shared per stream).
        """
        if chunk.get("error"):
            return PartialUpdate(choices=(ChoiceDelta(index=0, finish_reason="error"),), model=chunk.get("model", ""))

        message = chunk.get("message") or {}
        tool_calls: list[ToolCallDelta] = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") or {}
            arguments = function.get("arguments", {})
            position = call_counter[0]
            call_counter[0] += 1
            tool_calls.append(
                ToolCallDelta(
                    index=position,
                    id=str(raw_call.get("id") or f"ollama_call_{position}"),
                    name=function.get("name") or None,
                    arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
                )
            )

        usage = None
        finish_reason = None
        if chunk.get("done"):
            finish_reason = chunk.get("done_reason") or "stop"
            prompt = int(chunk.get("prompt_eval_count", 0) or 0)
            completion = int(chunk.get("eval_count", 0) or 0)
            usage = Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)

        return PartialUpdate(
            choices=(
                ChoiceDelta(
                    index=0,
                    content=message.get("content") or None,
                    tool_calls=tuple(tool_calls),
                    finish_reason=finish_reason,
                ),
            ),
            usage=usage,
            model=str(chunk.get("model", "") or ""),
        )

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[PartialUpdate]:
        """Stream a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(messages, tools)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        call_counter = [0]
        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(messages))
            async with self.client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise http_status_error("Ollama", response.status_code, error_text)

                async for line in response.aiter_lines():
                    if cancel_event is not None and cancel_event.is_set():
                        return
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    yield self.parse_line(chunk, call_counter)
                    if chunk.get("done"):
                        break
        except httpx.TransportError as e:
            raise TransportError(f"Ollama streaming error: {e}") from e

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
