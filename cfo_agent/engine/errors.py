"""Exception hierarchy and user-facing error texts."""

from __future__ import annotations

from typing import Literal

LLMErrorKind = Literal["auth", "rate_limit", "unreachable", "endpoint", "bad_response", "unknown"]


class CFOAgentError(Exception):
    """Base class for every error raised by the engine."""


# ---------------------------------------------------------------------------
# Tool server
# ---------------------------------------------------------------------------

class ToolServerError(CFOAgentError):
    pass


class ToolServerUnavailable(ToolServerError):
    """The tool server could not be reached or the handshake failed."""


class ProtocolTimeout(ToolServerError):
    def __init__(self, request_id: int, method: str, timeout: float) -> None:
        super().__init__(f"Request {request_id} ({method}) timed out after {timeout}s")
        self.request_id = request_id
        self.method = method
        self.timeout = timeout


class ToolCallError(ToolServerError):
    """The server answered with a JSON-RPC error or an ``isError`` tool result."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


# ---------------------------------------------------------------------------
# LLM provider
# ---------------------------------------------------------------------------

class LLMProviderError(CFOAgentError):
    def __init__(self, kind: LLMErrorKind, message: str = "") -> None:
        super().__init__(message or kind)
        self.kind = kind


USER_FACING_MESSAGES: dict[str, str] = {
    "unreachable": "I couldn't reach the AI service right now. Please try again in a moment.",
    "auth": "AI credentials look invalid. Please verify the LLM API key and endpoint.",
    "rate_limit": "The AI service is rate-limited right now. Please wait a moment and try again.",
    "endpoint": "LLM endpoint appears misconfigured. Please verify endpoint and model settings.",
}
DEFAULT_USER_MESSAGE = "I couldn't complete this request right now. Please try again in a moment."


def user_facing_message(exc: BaseException) -> str:
    """Map any failure to a fixed, non-technical sentence for the end user."""
    if isinstance(exc, LLMProviderError):
        return USER_FACING_MESSAGES.get(exc.kind, DEFAULT_USER_MESSAGE)
    return DEFAULT_USER_MESSAGE
