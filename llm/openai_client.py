"""
Folio - OpenAI-Compatible Client
HTTP client for any /chat/completions endpoint (OpenAI, DeepSeek, OpenRouter,
llama.cpp and vLLM servers)
"""

import json
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from core.logger import log_warning

# Server-sent event framing
SSE_DATA_PREFIX = "data: "
SSE_DONE_SENTINEL = "[DONE]"


@dataclass
class CompletionResponse:
    """Response from an OpenAI-compatible endpoint."""
    text: str
    success: bool
    tokens_in: int = 0
    tokens_out: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None  # "http_error", "timeout", "connection_error", "bad_response"


class OpenAICompatibleClient:
    """
    Client for OpenAI-style chat completion APIs.

    Requests are plain JSON POSTs; streaming responses are read as
    server-sent events and reassembled into a single response.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        timeout: int = 300
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL, e.g. https://api.openai.com/v1
            api_key: Bearer token (may be empty for local servers)
            model: Default model identifier
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def is_available(self) -> bool:
        """Check if the endpoint answers its model listing."""
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers=self._headers(),
                timeout=5
            )
            return response.status_code == 200
        except requests.RequestException:
            return False

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None
    ) -> CompletionResponse:
        """
        Send a non-streaming chat completion request.

        Args:
            messages: List of {"role": "system"|"user"|"assistant", "content": "..."}
            model: Optional model override

        Returns:
            CompletionResponse with the message content and token usage
        """
        payload = {
            "model": model or self.model,
            "messages": messages,
            "stream": False,
        }

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout
            )
        except requests.Timeout:
            return _failure("Request timed out", "timeout")
        except requests.ConnectionError:
            return _failure(f"Connection failed - is {self.base_url} reachable?", "connection_error")
        except requests.RequestException as e:
            return _failure(str(e), "connection_error")

        if not response.ok:
            return _http_failure(response.status_code, response.text)

        try:
            data = response.json()
            text = data["choices"][0]["message"].get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            return _failure(f"Unexpected response body: {e}", "bad_response", response.status_code)

        usage = data.get("usage") or {}
        return CompletionResponse(
            text=text,
            success=True,
            tokens_in=usage.get("prompt_tokens", 0),
            tokens_out=usage.get("completion_tokens", 0),
            status_code=response.status_code
        )

    def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        on_chunk: Optional[Callable[[str], None]] = None
    ) -> CompletionResponse:
        """
        Send a streaming chat completion request and reassemble it.

        Args:
            messages: Chat messages
            model: Optional model override
            on_chunk: Called with each content increment as it arrives

        Returns:
            CompletionResponse holding the full concatenated content
        """
        payload = {
            "model": model or self.model,
            "messages": messages,
            "stream": True,
        }

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
                stream=True
            )
        except requests.Timeout:
            return _failure("Request timed out", "timeout")
        except requests.ConnectionError:
            return _failure(f"Connection failed - is {self.base_url} reachable?", "connection_error")
        except requests.RequestException as e:
            return _failure(str(e), "connection_error")

        with response:
            if not response.ok:
                return _http_failure(response.status_code, response.text)

            parts: List[str] = []
            tokens_in = tokens_out = 0
            try:
                for line in response.iter_lines(decode_unicode=True):
                    delta, usage = parse_stream_line(line)
                    if usage:
                        tokens_in = usage.get("prompt_tokens", tokens_in)
                        tokens_out = usage.get("completion_tokens", tokens_out)
                    if delta:
                        parts.append(delta)
                        if on_chunk:
                            on_chunk(delta)
            except requests.RequestException as e:
                return _failure(f"Stream interrupted: {e}", "connection_error", response.status_code)

        return CompletionResponse(
            text="".join(parts),
            success=True,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            status_code=response.status_code
        )

    def validate_connection(self) -> tuple[bool, str]:
        """
        Validate the connection and return status.

        Returns:
            Tuple of (is_valid, status_message)
        """
        if self.is_available():
            return True, f"Connected to {self.base_url} ({self.model})"
        return False, f"{self.base_url} not responding"


def parse_stream_line(line: Optional[str]) -> tuple[str, Optional[dict]]:
    """
    Decode one server-sent event line.

    Returns:
        (content increment, usage dict or None). Blank lines, comments,
        the [DONE] sentinel and malformed events yield ("", None).
    """
    if not line or not line.startswith(SSE_DATA_PREFIX):
        return "", None

    data = line[len(SSE_DATA_PREFIX):].strip()
    if data == SSE_DONE_SENTINEL:
        return "", None

    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        log_warning(f"Skipping malformed stream event: {data[:80]}")
        return "", None

    delta = ""
    choices = event.get("choices") or []
    if choices:
        delta = (choices[0].get("delta") or {}).get("content") or ""
    return delta, event.get("usage")


def _failure(error: str, error_type: str, status_code: Optional[int] = None) -> CompletionResponse:
    return CompletionResponse(
        text="",
        success=False,
        status_code=status_code,
        error=error,
        error_type=error_type
    )


def _http_failure(status_code: int, body: str) -> CompletionResponse:
    return _failure(f"HTTP {status_code}: {body}", "http_error", status_code)


# Global client instance
_openai_client: Optional[OpenAICompatibleClient] = None


def get_openai_client() -> OpenAICompatibleClient:
    """Get the global OpenAI-compatible client instance."""
    global _openai_client
    if _openai_client is None:
        from config import LLM_API_BASE_URL, LLM_API_KEY, LLM_MODEL, LLM_TIMEOUT
        _openai_client = OpenAICompatibleClient(
            base_url=LLM_API_BASE_URL,
            api_key=LLM_API_KEY,
            model=LLM_MODEL,
            timeout=LLM_TIMEOUT
        )
    return _openai_client
