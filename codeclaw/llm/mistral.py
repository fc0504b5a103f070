"""Mistral / OpenAI-compatible chat backend over server-sent events."""

import asyncio
import json
import os
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
    http_status_error,
    message_to_wire,
    tool_to_wire,
)
from codeclaw.logging import get_logger

log = get_logger(__name__)


DEFAULT_BASE_URLS = {
    "mistral": "https://api.mistral.ai",
    "openai": "https://api.openai.com",
}
API_KEY_ENV = {
    "mistral": "MISTRAL_API_KEY",
    "openai": "OPENAI_API_KEY",
}
_DONE = "[DONE]"


def _content_delta(raw: Any) -> str | None:
    """Normalize delta content, which some models send as a part list."""
    if raw is None or isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return "".join(
            str(part.get("text", ""))
            for part in raw
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return str(raw)


def parse_stream_chunk(payload: dict[str, Any]) -> PartialUpdate:
    """Convert one decoded SSE ``data:`` payload into a PartialUpdate."""
    if payload.get("error"):
        log.warning("Backend reported stream error", error=payload.get("error"))
        return PartialUpdate(
            choices=(ChoiceDelta(index=0, finish_reason="error"),),
            model=str(payload.get("model", "") or ""),
        )

    choices: list[ChoiceDelta] = []
    for raw_choice in payload.get("choices") or []:
        delta = raw_choice.get("delta") or raw_choice.get("message") or {}
        tool_calls: list[ToolCallDelta] = []
        for position, raw_call in enumerate(delta.get("tool_calls") or delta.get("toolCalls") or []):
            function = raw_call.get("function") or {}
            arguments = function.get("arguments")
            if isinstance(arguments, dict):
                arguments = json.dumps(arguments)
            index = raw_call.get("index")
            tool_calls.append(
                ToolCallDelta(
                    index=int(index) if index is not None else position,
                    id=raw_call.get("id") or None,
                    name=function.get("name") or None,
                    arguments=arguments,
                )
            )
        choices.append(
            ChoiceDelta(
                index=int(raw_choice.get("index", 0) or 0),
                content=_content_delta(delta.get("content")),
                tool_calls=tuple(tool_calls),
                finish_reason=raw_choice.get("finish_reason", raw_choice.get("finishReason")),
            )
        )

    return PartialUpdate(
        choices=tuple(choices),
        usage=Usage.from_wire(payload.get("usage")),
        model=str(payload.get("model", "") or ""),
    )


class MistralBackend(ChatBackend):
    """Streaming chat completions against Mistral or any OpenAI-compatible API."""

    def __init__(
        self,
        model: str = "devstral-small-2505",
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URLS["mistral"],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float = 120.0,
        provider: str = "mistral",
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the backend.

        Args:
            model: Model name (e.g., 'devstral-small-2505')
            api_key: API key; falls back to MISTRAL_API_KEY / OPENAI_API_KEY
            base_url: API base URL without the /v1 suffix
            temperature: Optional sampling temperature
            max_tokens: Optional completion token cap
            timeout: HTTP timeout in seconds
            provider: "mistral" or "openai", only affects defaults
            client: Optional preconfigured HTTP client (tests)
        """
        self.model = model
        self.provider = provider
        self.api_key = api_key or os.environ.get(API_KEY_ENV.get(provider, "MISTRAL_API_KEY"), "")
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def _build_body(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [message_to_wire(msg) for msg in messages],
            "stream": True,
        }
        if tools:
            body["tools"] = [tool_to_wire(tool) for tool in tools]
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens:
            body["max_tokens"] = self.max_tokens
        if self.provider == "openai":
            body["stream_options"] = {"include_usage": True}
        return body

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[PartialUpdate]:
        """Stream a chat completion as PartialUpdate events."""
        url = f"{self.base_url}/v1/chat/completions"
        body = self._build_body(messages, tools)

        try:
            log.debug("Calling chat backend", model=self.model, url=url, msg_count=len(messages))
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise http_status_error("Backend", response.status_code, error_text)

                async for line in response.aiter_lines():
                    if cancel_event is not None and cancel_event.is_set():
                        return
                    line = line.strip()
                    if not line or not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == _DONE:
                        break
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError:
                        log.debug("Skipping undecodable stream line", line=data[:200])
                        continue
                    yield parse_stream_chunk(payload)
        except httpx.TransportError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
