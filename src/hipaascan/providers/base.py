"""AI provider abstraction with retry logic."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..core.config import PROVIDER_SECTIONS
from ..models.provider import CompletionResult
from ..utils.sanitize import sanitize_error

RETRYABLE_MARKERS = ("500", "502", "503", "504", "timeout", "timed out")
FATAL_MARKERS = ("400", "401", "403", "404")

# Raised while decoding or walking a 2xx body that is not the expected JSON
MALFORMED_REPLY = (ValueError, TypeError, AttributeError, KeyError, IndexError)


@runtime_checkable
class AIProvider(Protocol):
    """Protocol that all AI providers must implement."""

    name: str

    async def complete_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult: ...


def is_rate_limited(result: CompletionResult) -> bool:
    if result.status_code is not None:
        return result.status_code == 429
    return "429" in (result.error or "")


def is_retryable(result: CompletionResult) -> bool:
    """Rate limits, 5xx and timeouts are retried; client errors are not."""
    if result.status_code is not None:
        return result.status_code == 429 or result.status_code >= 500
    error_msg = result.error or ""
    return (
        "429" in error_msg or any(code in error_msg for code in RETRYABLE_MARKERS)
    ) and not any(code in error_msg for code in FATAL_MARKERS)


class BaseProvider:
    """Base class with shared retry logic and config handling."""

    name: str = "base"
    api_key_env: str = ""

    def __init__(
        self,
        provider_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = provider_config
        self.common = common_config
        self.max_attempts = common_config.get("retry_attempts", 3)
        self.retry_delay = common_config.get("retry_delay_seconds", 5)
        self.temperature = common_config.get("temperature", 0.1)
        self.timeout = common_config.get("timeout_seconds", 300)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _missing_key(self) -> CompletionResult:
        env_var = self.config.get("api_key_env", self.api_key_env)
        return CompletionResult(
            success=False,
            error=f"API key not found in environment variable: {env_var}",
        )

    @staticmethod
    def _http_error(e: httpx.HTTPStatusError) -> CompletionResult:
        return CompletionResult(
            success=False,
            error=f"{e.response.status_code} | {e.response.text}",
            status_code=e.response.status_code,
        )

    @staticmethod
    def _malformed_reply(e: Exception) -> CompletionResult:
        return CompletionResult(
            success=False,
            error=f"Unexpected response from provider: {type(e).__name__}: {e}",
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult:
        raise NotImplementedError

    async def complete_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult:
        """Wrap complete() with retry logic including rate-limit handling."""
        rate_limit_max = max(self.max_attempts, 5)
        last_result: Optional[CompletionResult] = None

        for attempt in range(1, rate_limit_max + 1):
            result = await self.complete(system_prompt, user_prompt, max_tokens)
            last_result = result

            if result.success:
                return result

            error_msg = result.error or ""
            rate_limited = is_rate_limited(result)
            retryable = is_retryable(result)

            effective_max = rate_limit_max if rate_limited else self.max_attempts
            if not retryable or attempt >= effective_max:
                result.error = sanitize_error(error_msg)
                return result

            # Rate limits: 30s base. Others: standard backoff.
            base_delay = 30 if rate_limited else self.retry_delay
            await asyncio.sleep(base_delay * min(attempt, 3))

        return last_result or CompletionResult(success=False, error="Max retries exceeded")


def get_ai_provider(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    endpoint_override: Optional[str] = None,
) -> BaseProvider:
    """Factory function to create the configured AI provider."""
    ai_config = config.get("ai", {})
    provider_name = provider_override or ai_config.get("provider", "anthropic")

    provider_config = dict(ai_config.get(provider_name, {}))
    if model_override:
        provider_config["model"] = model_override
    if endpoint_override:
        provider_config["endpoint"] = endpoint_override

    # Common config is the ai section minus provider sub-configs
    common_config = {
        k: v
        for k, v in ai_config.items()
        if k not in PROVIDER_SECTIONS
    }

    if provider_name == "anthropic":
        from .anthropic import AnthropicProvider
        return AnthropicProvider(provider_config, common_config)
    elif provider_name == "openai":
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(provider_config, common_config)
    elif provider_name == "gemini":
        from .gemini import GeminiProvider
        return GeminiProvider(provider_config, common_config)
    elif provider_name == "ollama":
        from .ollama import OllamaProvider
        return OllamaProvider(provider_config, common_config)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")
