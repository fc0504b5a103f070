"""Conversation data model and the chat backend contract."""

import asyncio
import dataclasses
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Union

from codeclaw.exceptions import ConfigurationError, LLMAPIError, LLMError, TransportError


# ---------------------------------------------------------------------------
# Content chunks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextChunk:
    """Plain text content."""

    text: str


@dataclass(frozen=True)
class ImageChunk:
    """Image reference, either a URL or inline base64 data."""

    mime_type: str = ""
    url: str = ""
    data: str = ""


@dataclass(frozen=True)
class AudioChunk:
    """Audio reference. Only the media type is kept."""

    mime_type: str = ""


@dataclass(frozen=True)
class ResourceChunk:
    """Embedded resource reference."""

    uri: str
    mime_type: str = ""


ContentChunk = Union[TextChunk, ImageChunk, AudioChunk, ResourceChunk]
Content = Union[str, tuple[ContentChunk, ...]]


def render_chunk_for_display(chunk: ContentChunk) -> str:
    """Render a chunk as terminal-friendly text."""
    if isinstance(chunk, TextChunk):
        return chunk.text
    if isinstance(chunk, ImageChunk):
        return f"[Image: {chunk.mime_type or chunk.url or 'unknown'}]"
    if isinstance(chunk, AudioChunk):
        return f"[Audio: {chunk.mime_type or 'unknown'}]"
    if isinstance(chunk, ResourceChunk):
        return f"[Resource: {chunk.uri}]"
    raise TypeError(f"Unsupported content chunk: {type(chunk).__name__}")


def chunk_to_wire(chunk: ContentChunk) -> dict[str, Any]:
    """Serialize a chunk for the chat backend.

    Backends only accept text and image parts, so audio and resource
    references are sent as their textual placeholder.
    """
    if isinstance(chunk, TextChunk):
        return {"type": "text", "text": chunk.text}
    if isinstance(chunk, ImageChunk):
        url = chunk.url or f"data:{chunk.mime_type or 'image/png'};base64,{chunk.data}"
        return {"type": "image_url", "image_url": url}
    if isinstance(chunk, (AudioChunk, ResourceChunk)):
        return {"type": "text", "text": render_chunk_for_display(chunk)}
    raise TypeError(f"Unsupported content chunk: {type(chunk).__name__}")


def chunk_from_wire(data: dict[str, Any]) -> ContentChunk:
    """Parse one content part received from a backend or tool server."""
    kind = str(data.get("type", "")).strip()
    if kind == "text":
        return TextChunk(text=str(data.get("text", "")))
    if kind in {"image_url", "image"}:
        raw = data.get("image_url", data.get("imageUrl", ""))
        url = raw.get("url", "") if isinstance(raw, dict) else str(raw or "")
        return ImageChunk(
            mime_type=str(data.get("mime_type", data.get("mimeType", "")) or ""),
            url=url,
            data=str(data.get("data", "") or ""),
        )
    if kind == "audio":
        return AudioChunk(mime_type=str(data.get("mime_type", data.get("mimeType", "")) or ""))
    if kind == "resource":
        resource = data.get("resource") or {}
        return ResourceChunk(
            uri=str(resource.get("uri", "")),
            mime_type=str(resource.get("mime_type", resource.get("mimeType", "")) or ""),
        )
    raise TypeError(f"Unsupported content type: {kind or '<missing>'}")


def content_text(content: Content | None) -> str:
    """Concatenate the text chunks of a message content."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(chunk.text for chunk in content if isinstance(chunk, TextChunk))


def content_for_display(content: Content | None) -> str:
    """Render any content, including non-text chunks, for display."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(render_chunk_for_display(chunk) for chunk in content)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    """A tool call from the LLM.

    ``arguments`` stays a raw JSON string until it is decoded for dispatch;
    ``index`` is the stream position hint and only matters during assembly.
    """

    id: str
    name: str
    arguments: str | dict[str, Any] = ""
    index: int | None = None

    def is_well_formed(self) -> bool:
        return bool(str(self.id or "").strip()) and bool(str(self.name or "").strip())

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode arguments into a mapping.

        Raises:
            ValueError if the arguments are not a JSON object
        """
        if isinstance(self.arguments, dict):
            return dict(self.arguments)
        raw = (self.arguments or "").strip()
        if not raw:
            return {}
        decoded = json.loads(raw)
        if not isinstance(decoded, dict):
            raise ValueError("tool arguments must be a JSON object")
        return decoded

    def arguments_json(self) -> str:
        if isinstance(self.arguments, dict):
            return json.dumps(self.arguments)
        return self.arguments or "{}"


@dataclass(frozen=True)
class Message:
    """A message in the transcript. Never mutated once appended."""

    role: str  # "system", "user", "assistant", "tool"
    content: Content = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: Content = "", tool_calls: tuple[ToolCall, ...] = ()) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, tool_call_id: str, content: Content, tool_name: str | None = None) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id, tool_name=tool_name)

    def text(self) -> str:
        return content_text(self.content)

    def with_appended_text(self, extra: str) -> "Message":
        """Return a copy whose content has ``extra`` appended as text."""
        if isinstance(self.content, str):
            return dataclasses.replace(self, content=self.content + extra)
        return dataclasses.replace(self, content=self.content + (TextChunk(text=extra),))


def message_to_wire(message: Message) -> dict[str, Any]:
    """Convert a message to the OpenAI-style chat payload."""
    if isinstance(message.content, str):
        content: Any = message.content
    else:
        content = [chunk_to_wire(chunk) for chunk in message.content]

    entry: dict[str, Any] = {"role": message.role, "content": content}
    if message.role == "assistant" and message.tool_calls:
        entry["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments_json()},
            }
            for call in message.tool_calls
        ]
    if message.role == "tool":
        entry["tool_call_id"] = message.tool_call_id or ""
        if message.tool_name:
            entry["name"] = message.tool_name
    return entry


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


def tool_to_wire(tool: ToolDefinition | dict[str, Any]) -> dict[str, Any]:
    """Convert a tool definition to the function-calling payload."""
    if isinstance(tool, dict):
        name = tool.get("name")
        description = tool.get("description", "")
        parameters = tool.get("parameters", {})
    else:
        name = tool.name
        description = tool.description
        parameters = tool.parameters
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description or "",
            "parameters": parameters or {"type": "object", "properties": {}},
        },
    }


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


@dataclass
class Usage:
    """Token usage for one or more requests."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None) -> "Usage | None":
        if not data:
            return None
        prompt = int(data.get("prompt_tokens", data.get("promptTokens", 0)) or 0)
        completion = int(data.get("completion_tokens", data.get("completionTokens", 0)) or 0)
        total = int(data.get("total_tokens", data.get("totalTokens", prompt + completion)) or 0)
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


class UsageCounters:
    """Per-model running token totals for a session."""

    def __init__(self) -> None:
        self._by_model: dict[str, Usage] = {}

    def add(self, model: str, usage: Usage) -> Usage:
        current = self._by_model.get(model, Usage())
        updated = current + usage
        self._by_model[model] = updated
        return updated

    def get(self, model: str) -> Usage:
        return self._by_model.get(model, Usage())

    def models(self) -> list[str]:
        return list(self._by_model)

    def __bool__(self) -> bool:
        return bool(self._by_model)

    def format(self) -> str:
        """Human-readable summary, one block per model."""
        if not self._by_model:
            return "No usage data available."
        blocks = []
        for model, usage in self._by_model.items():
            blocks.append(
                f"Model: {model}\n"
                f"Prompt Tokens: {usage.prompt_tokens}\n"
                f"Completion Tokens: {usage.completion_tokens}\n"
                f"Total Tokens: {usage.total_tokens}"
            )
        return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCallDelta:
    """Fragment of a tool call as streamed by the backend."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class ChoiceDelta:
    """Per-choice portion of a stream event."""

    index: int = 0
    content: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None


@dataclass(frozen=True)
class PartialUpdate:
    """One event of the backend's response stream."""

    choices: tuple[ChoiceDelta, ...] = ()
    usage: Usage | None = None
    model: str = ""


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

# Request timeout and rate limiting are worth retrying like server errors.
RETRYABLE_STATUS = frozenset({408, 429})


def http_status_error(label: str, status: int, body: str) -> LLMError:
    """Map a failed HTTP status to a retryable or terminal backend error."""
    if status >= 500 or status in RETRYABLE_STATUS:
        return TransportError(f"{label} HTTP {status}: {body}")
    return LLMAPIError(f"{label} API error {status}: {body}", status_code=status)


class ChatBackend(ABC):
    """Abstract base class for chat backends."""

    model: str = ""

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[PartialUpdate]:
        """Send the transcript and yield partial updates.

        Raises:
            TransportError on connection-level failure (retryable)
            LLMAPIError when the backend rejects the request
        """

    async def aclose(self) -> None:
        """Release network resources."""
        return None


def create_backend(
    provider: str = "mistral",
    model: str = "devstral-small-2505",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float = 120.0,
) -> ChatBackend:
    """Create a chat backend.

    Args:
        provider: Provider name (mistral, openai, ollama)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Sampling temperature
        max_tokens: Max tokens to generate
        timeout: HTTP timeout in seconds

    Returns:
        Configured ChatBackend instance
    """
    normalized = (provider or "").strip().lower()
    if normalized in {"mistral", "openai"}:
        from codeclaw.llm.mistral import DEFAULT_BASE_URLS, MistralBackend

        return MistralBackend(
            model=model,
            api_key=api_key,
            base_url=base_url or DEFAULT_BASE_URLS[normalized],
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            provider=normalized,
        )
    if normalized == "ollama":
        from codeclaw.llm.ollama import OLLAMA_NATIVE_BASE_URL, OllamaBackend

        return OllamaBackend(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ConfigurationError(
        f"Provider '{provider}' not supported. Use 'mistral', 'openai' or 'ollama'."
    )


__all__ = [
    "AudioChunk",
    "ChatBackend",
    "ChoiceDelta",
    "Content",
    "ContentChunk",
    "ImageChunk",
    "Message",
    "PartialUpdate",
    "ResourceChunk",
    "TextChunk",
    "ToolCall",
    "ToolCallDelta",
    "ToolDefinition",
    "Usage",
    "UsageCounters",
    "chunk_from_wire",
    "chunk_to_wire",
    "content_for_display",
    "content_text",
    "create_backend",
    "message_to_wire",
    "render_chunk_for_display",
    "tool_to_wire",
]
