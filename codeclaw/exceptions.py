"""Custom exceptions for CodeClaw."""


class CodeClawError(Exception):
    """Base exception for CodeClaw."""

    pass


class ConfigurationError(CodeClawError):
    """Configuration-related errors."""

    pass


class LLMError(CodeClawError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """Errors deliberately returned by the chat backend (auth, bad request, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(LLMError):
    """Connection-level failure talking to the chat backend. Retryable."""

    pass


class RequestCancelledError(CodeClawError):
    """The operator cancelled the in-flight request."""

    def __init__(self, message: str = "Request cancelled by user"):
        super().__init__(message)


class ToolError(CodeClawError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.reason = message


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentsError(ToolError):
    """Tool arguments could not be decoded or failed schema checks."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for '{tool_name}': {message}")
        self.tool_name = tool_name


class ToolCallValidationError(CodeClawError):
    """A tool call from the model is missing its id or function name."""

    pass


class ToolServerError(CodeClawError):
    """Out-of-process tool server failed to start or respond."""

    def __init__(self, server_name: str, message: str):
        super().__init__(f"Tool server '{server_name}': {message}")
        self.server_name = server_name
