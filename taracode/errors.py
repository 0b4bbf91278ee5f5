"""Structured error types for taracode."""


class TaracodeError(Exception):
    """Base error for all taracode operations."""
    pass


class ToolError(TaracodeError):
    """Error raised during tool execution.

    The message is kept bare: it is fed back to the model as
    ``Error: <message>``.
    """

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)


class UnknownToolError(ToolError):
    """Raised when the model asks for a tool that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"unknown tool: {tool_name}")


class ShellTimeoutError(TaracodeError):
    """Raised when a shell command exceeds its timeout."""

    def __init__(self, timeout: int):
        self.timeout = timeout
        super().__init__(f"command timed out after {timeout}s")


class StorageError(TaracodeError):
    """Raised when session or plan persistence fails."""
    pass


class ProviderError(TaracodeError):
    """Raised when the LLM server cannot be set up."""
    pass
