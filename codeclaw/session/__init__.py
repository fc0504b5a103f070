"""Conversation session: owns the transcript, entries, gate and tool servers."""

import asyncio
import uuid
from pathlib import Path
from typing import Any

from codeclaw.commands import handle_command, is_command
from codeclaw.config import Config
from codeclaw.exceptions import ToolServerError
from codeclaw.hooks import ConversationEntry, ConversationHooks, EntryType, ToolCallStatus
from codeclaw.instructions import build_system_prompt
from codeclaw.llm import ChatBackend, Message, Usage, UsageCounters
from codeclaw.logging import get_logger
from codeclaw.orchestrator import ConversationOrchestrator, TurnOutcome, TurnStatus
from codeclaw.permissions import PermissionGate
from codeclaw.request_executor import RequestExecutor
from codeclaw.tools import TodoStore, ToolRegistry, build_default_registry
from codeclaw.tools.mcp_client import McpToolServerManager

log = get_logger(__name__)


class _SessionHooks(ConversationHooks):
    """Records entries on the session before forwarding to the frontend."""

    def __init__(self, session: "ConversationSession", inner: ConversationHooks):
        self._session = session
        self._inner = inner

    @property
    def permission_prompt(self):  # type: ignore[override]
        return self._inner.permission_prompt

    def on_entry(self, entry: ConversationEntry) -> str:
        self._session.entries.append(entry)
        self._inner.on_entry(entry)
        return entry.id

    def on_entry_status(self, entry_id: str, status: ToolCallStatus) -> None:
        for entry in self._session.entries:
            if entry.id == entry_id:
                entry.status = status
                break
        self._inner.on_entry_status(entry_id, status)

    def on_error(self, message: str) -> None:
        self._inner.on_error(message)

    def on_loading(self, loading: bool) -> None:
        self._inner.on_loading(loading)

    def on_token_progress(self, completion_tokens: int) -> None:
        self._inner.on_token_progress(completion_tokens)

    def on_usage(self, model: str, usage: Usage) -> None:
        self._inner.on_usage(model, usage)

    def interruption_requested(self) -> bool:
        return self._inner.interruption_requested()


class ConversationSession:
    """One interactive conversation.

    Use as an async context manager: entering connects configured tool
    servers and seeds the system prompt, leaving disconnects them, closes
    the backend and forgets session-scoped permissions and todos.
    """

    def __init__(
        self,
        backend: ChatBackend,
        registry: ToolRegistry | None = None,
        hooks: ConversationHooks | None = None,
        config: Config | None = None,
        todo_store: TodoStore | None = None,
        working_dir: Path | str | None = None,
        system_prompt: str | None = None,
        session_id: str | None = None,
    ):
        self.config = config or Config()
        self.backend = backend
        self.id = session_id or uuid.uuid4().hex[:12]
        self.working_dir = Path(working_dir or Path.cwd()).resolve()
        self.todo_store = todo_store or TodoStore()
        self.registry = registry or build_default_registry(
            self.config.tools,
            todo_store=self.todo_store,
            base_path=self.working_dir,
        )
        self.entries: list[ConversationEntry] = []
        self.hooks = _SessionHooks(self, hooks or ConversationHooks())
        self.gate = PermissionGate(
            prompt=self.hooks.permission_prompt,
            config=self.config.permissions,
            describe=self.registry.describe,
        )
        self.executor = RequestExecutor(
            backend,
            max_attempts=self.config.request.max_attempts,
            backoff_seconds=self.config.request.backoff_seconds,
        )
        self.orchestrator = ConversationOrchestrator(
            self.executor,
            self.registry,
            hooks=self.hooks,
            gate=self.gate,
            todo_provider=self.todo_store,
            max_rounds=self.config.conversation.max_rounds,
            system_prompt=system_prompt,
            session_id=self.id,
        )
        self.tool_servers = McpToolServerManager(self.registry)
        self.should_exit = False
        self._system_prompt = system_prompt
        self._turn_lock = asyncio.Lock()

    @property
    def transcript(self) -> tuple[Message, ...]:
        return self.orchestrator.transcript

    @property
    def usage(self) -> UsageCounters:
        return self.orchestrator.usage

    @property
    def busy(self) -> bool:
        """Whether a turn or command is running."""
        return self._turn_lock.locked()

    async def __aenter__(self) -> "ConversationSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def start(self) -> None:
        """Connect tool servers and seed the system prompt."""
        if self._system_prompt is None:
            self._system_prompt = build_system_prompt(self.working_dir)
        self.orchestrator.reset(self._system_prompt)

        for server_config in self.config.tool_servers:
            try:
                await self.tool_servers.add_server(server_config)
            except ToolServerError as e:
                log.warning("Tool server unavailable", server=server_config.name, error=str(e))
                self.hooks.on_error(str(e))

        log.info("Session started", session_id=self.id, tools=self.registry.list_tools())

    async def aclose(self) -> None:
        """Release everything the session holds.

        Session approvals and todos are dropped even when a tool or the
        backend fails to close; that failure still propagates.
        """
        try:
            try:
                await self.tool_servers.disconnect_all()
                for name in self.registry.list_tools():
                    close = getattr(self.registry.get(name), "close", None)
                    if close is not None:
                        await close()
            finally:
                await self.backend.aclose()
        finally:
            await self.gate.cache.clear()
            self.todo_store.clear()
            log.info("Session closed", session_id=self.id)

    async def submit(self, text: str) -> TurnOutcome:
        """Handle one line of user input.

        Slash commands run locally; anything else starts a request-turn.
        A second submit while a turn is running waits for it to finish.
        """
        async with self._turn_lock:
            if not text.strip():
                return TurnOutcome(status=TurnStatus.COMPLETED)
            if is_command(text):
                return await self._run_command(text)
            self.hooks.on_entry(ConversationEntry(type=EntryType.USER, content=text))
            return await self.orchestrator.run_turn(text)

    async def _run_command(self, text: str) -> TurnOutcome:
        result = handle_command(text, self.usage)
        if result.clear_history:
            await self.clear()
        if result.exit:
            self.should_exit = True

        self.hooks.on_entry(ConversationEntry(type=EntryType.COMMAND, content=text.strip()))
        if result.output:
            self.hooks.on_entry(ConversationEntry(type=EntryType.ASSISTANT, content=result.output))

        if not result.known:
            return TurnOutcome(status=TurnStatus.ERROR, error=result.output)
        return TurnOutcome(status=TurnStatus.COMPLETED)

    def interrupt(self) -> None:
        """Stop the running turn at its next safe point."""
        log.info("Interrupt requested", session_id=self.id)
        self.orchestrator.interrupt()

    async def clear(self) -> None:
        """Reset the transcript to the system prompt and drop visible entries."""
        self.orchestrator.reset()
        self.entries.clear()
        self.todo_store.clear()
