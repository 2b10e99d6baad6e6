"""
Folio - LLM Router
Sends completion requests to the configured provider and tracks token usage
"""

import threading
from enum import Enum
from typing import Optional, List, Dict, Callable
from dataclasses import dataclass

from core.logger import log_debug, log_warning
from core.prompt_logger import log_api_request
from llm.openai_client import OpenAICompatibleClient, get_openai_client
from llm.anthropic_client import AnthropicClient, get_anthropic_client


class LLMProvider(Enum):
    """Available LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class LLMResponse:
    """Unified response from any LLM provider."""
    text: str
    success: bool
    provider: LLMProvider
    model: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class TokenUsage:
    """Running token totals for one router."""
    requests: int = 0
    failures: int = 0
    tokens_in: int = 0
    tokens_out: int = 0

    @property
    def total_tokens(self) -> int:
        return self.tokens_in + self.tokens_out


class LLMRouter:
    """
    Routes completion requests to the configured provider.

    One provider per router; there is no fallback and no retry. A failed
    request comes back as an LLMResponse with success=False and it is up
    to the caller what to do about it.
    """

    def __init__(
        self,
        provider: LLMProvider = LLMProvider.OPENAI,
        streaming: bool = False,
        prompt_logging: bool = False
    ):
        """
        Initialize the router.

        Args:
            provider: Which backend serves requests
            streaming: Stream responses (SSE or the SDK stream)
            prompt_logging: Append every request to the prompt log
        """
        self.provider = provider
        self.streaming = streaming
        self.prompt_logging = prompt_logging
        self._openai: Optional[OpenAICompatibleClient] = None
        self._anthropic: Optional[AnthropicClient] = None
        self._usage = TokenUsage()
        self._usage_lock = threading.Lock()

    def _get_openai(self) -> OpenAICompatibleClient:
        """Get or create the OpenAI-compatible client."""
        if self._openai is None:
            self._openai = get_openai_client()
        return self._openai

    def _get_anthropic(self) -> AnthropicClient:
        """Get or create Anthropic client."""
        if self._anthropic is None:
            self._anthropic = get_anthropic_client()
        return self._anthropic

    def default_model(self) -> str:
        if self.provider == LLMProvider.ANTHROPIC:
            return self._get_anthropic().model
        return self._get_openai().model

    def check_provider(self) -> tuple[bool, str]:
        """Check the configured provider. Returns (is_available, status_message)."""
        if self.provider == LLMProvider.ANTHROPIC:
            client = self._get_anthropic()
            if client.is_available():
                return True, f"Anthropic configured ({client.model})"
            return False, "ANTHROPIC_API_KEY not configured"
        return self._get_openai().validate_connection()

    def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        on_chunk: Optional[Callable[[str], None]] = None
    ) -> LLMResponse:
        """
        Send one completion request.

        Args:
            messages: Ordered {"role", "content"} messages, system first
            model: Optional model override
            on_chunk: Called with each text increment when streaming

        Returns:
            LLMResponse; check .success before using .text
        """
        model = model or self.default_model()

        if self.provider == LLMProvider.ANTHROPIC:
            client = self._get_anthropic()
            if self.streaming:
                raw = client.chat_stream(messages=messages, model=model, on_chunk=on_chunk)
            else:
                raw = client.chat(messages=messages, model=model)
            response = LLMResponse(
                text=raw.text,
                success=raw.success,
                provider=self.provider,
                model=model,
                tokens_in=raw.input_tokens,
                tokens_out=raw.output_tokens,
                status_code=raw.status_code,
                error=raw.error,
                error_type=raw.error_type
            )
        else:
            client = self._get_openai()
            if self.streaming:
                raw = client.chat_stream(messages=messages, model=model, on_chunk=on_chunk)
            else:
                raw = client.chat(messages=messages, model=model)
            response = LLMResponse(
                text=raw.text,
                success=raw.success,
                provider=self.provider,
                model=model,
                tokens_in=raw.tokens_in,
                tokens_out=raw.tokens_out,
                status_code=raw.status_code,
                error=raw.error,
                error_type=raw.error_type
            )

        self._record(response)

        if response.success:
            log_debug(
                f"{self.provider.value}/{model}: {response.tokens_in} in, "
                f"{response.tokens_out} out"
            )
        else:
            log_warning(f"{self.provider.value}/{model} request failed: {response.error}")

        if self.prompt_logging:
            log_api_request(
                provider=self.provider.value,
                model=model,
                messages=messages,
                response_text=response.text,
                tokens_in=response.tokens_in,
                tokens_out=response.tokens_out,
                success=response.success,
                error=response.error
            )

        return response

    def _record(self, response: LLMResponse) -> None:
        with self._usage_lock:
            self._usage.requests += 1
            if not response.success:
                self._usage.failures += 1
            self._usage.tokens_in += response.tokens_in
            self._usage.tokens_out += response.tokens_out

    def get_usage(self) -> TokenUsage:
        """Snapshot of accumulated usage."""
        with self._usage_lock:
            return TokenUsage(**vars(self._usage))

    def reset_usage(self) -> None:
        with self._usage_lock:
            self._usage = TokenUsage()


def create_llm_router(
    provider: str = "openai",
    streaming: bool = False,
    prompt_logging: bool = False
) -> LLMRouter:
    """Router for a provider name from config ("openai" or "anthropic")."""
    return LLMRouter(
        provider=LLMProvider(provider),
        streaming=streaming,
        prompt_logging=prompt_logging
    )
