"""
Folio - Anthropic Client
Claude completions through the Anthropic SDK.

Requests arrive as OpenAI-style message lists; system messages are lifted
into the Messages API `system` parameter. Failures come back classified on
the response, never raised.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from core.logger import log_warning

# error_type and message per HTTP status
_STATUS_ERRORS = {
    401: ("auth_error", "Authentication failed"),
    403: ("auth_error", "Permission denied"),
    429: ("rate_limited", "Rate limit exceeded"),
    500: ("server_error", "Server error (500)"),
    502: ("server_error", "Server error (502)"),
    503: ("server_error", "Server error (503)"),
    529: ("overloaded", "API overloaded"),
}


@dataclass
class AnthropicResponse:
    """Outcome of one Messages API call."""
    text: str
    success: bool
    input_tokens: int = 0
    output_tokens: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None  # timeout, connection_error, rate_limited, auth_error, ...
    stop_reason: Optional[str] = None


def split_system_messages(messages: List[Dict[str, str]]) -> tuple[Optional[str], List[Dict[str, str]]]:
    """
    Separate system-role content from the conversation turns.

    Returns:
        (system prompt joined by blank lines or None, remaining turns)
    """
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    turns = [m for m in messages if m.get("role") != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), turns


def classify_error(error: Exception) -> tuple[str, str, Optional[int]]:
    """Map an SDK exception to (error_type, message, status_code)."""
    import anthropic

    if isinstance(error, anthropic.APITimeoutError):
        return "timeout", "Request timed out", None
    if isinstance(error, anthropic.APIConnectionError):
        return "connection_error", "Connection failed", None
    if isinstance(error, anthropic.APIStatusError):
        status = error.status_code
        error_type, message = _STATUS_ERRORS.get(status, ("http_error", f"HTTP {status}: {error}"))
        return error_type, message, status
    return "unknown", str(error), None


class AnthropicClient:
    """Messages API client used when LLM_PROVIDER is "anthropic"."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 8192,
        timeout: int = 300
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Create the SDK client on first use."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _params(self, messages: List[Dict[str, str]], model: Optional[str]) -> dict:
        system_prompt, turns = split_system_messages(messages)
        params = {
            "model": model or self.model,
            "max_tokens": self.max_tokens,
            "messages": turns,
        }
        if system_prompt:
            params["system"] = system_prompt
        return params

    def _failure(self, error: Exception) -> AnthropicResponse:
        error_type, message, status = classify_error(error)
        log_warning(f"Anthropic request failed ({error_type}): {message}")
        return AnthropicResponse(
            text="",
            success=False,
            status_code=status,
            error=message,
            error_type=error_type
        )

    def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None) -> AnthropicResponse:
        """
        Send one non-streaming request.

        Args:
            messages: OpenAI-style messages, system first
            model: Optional model override

        Returns:
            AnthropicResponse; check .success before using .text
        """
        try:
            message = self._get_client().messages.create(**self._params(messages, model))
        except Exception as e:
            return self._failure(e)
        return _from_message(message)

    def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        on_chunk: Optional[Callable[[str], None]] = None
    ) -> AnthropicResponse:
        """Stream a request, passing text deltas to on_chunk, and return the full message."""
        try:
            with self._get_client().messages.stream(**self._params(messages, model)) as stream:
                for delta in stream.text_stream:
                    if on_chunk:
                        on_chunk(delta)
                message = stream.get_final_message()
        except Exception as e:
            return self._failure(e)
        return _from_message(message)


def _from_message(message) -> AnthropicResponse:
    text = "".join(
        getattr(block, "text", "")
        for block in message.content
        if getattr(block, "type", None) == "text"
    )
    return AnthropicResponse(
        text=text,
        success=True,
        input_tokens=message.usage.input_tokens,
        output_tokens=message.usage.output_tokens,
        stop_reason=message.stop_reason
    )


_anthropic_client: Optional[AnthropicClient] = None


def get_anthropic_client() -> AnthropicClient:
    """Global client built from config."""
    global _anthropic_client
    if _anthropic_client is None:
        from config import ANTHROPIC_API_KEY, ANTHROPIC_MAX_TOKENS, ANTHROPIC_MODEL, LLM_TIMEOUT
        _anthropic_client = AnthropicClient(
            api_key=ANTHROPIC_API_KEY,
            model=ANTHROPIC_MODEL,
            max_tokens=ANTHROPIC_MAX_TOKENS,
            timeout=LLM_TIMEOUT
        )
    return _anthropic_client
