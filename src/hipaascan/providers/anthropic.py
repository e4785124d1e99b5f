"""Anthropic Claude Messages API provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import MALFORMED_REPLY, BaseProvider


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    API_URL = "https://api.anthropic.com/v1/messages"

    def _get_api_key(self) -> Optional[str]:
        env_var = self.config.get("api_key_env", self.api_key_env)
        return self.config.get("api_key") or os.environ.get(env_var)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult:
        api_key = self._get_api_key()
        if not api_key:
            return self._missing_key()

        body = {
            "model": self.config.get("model", "claude-haiku-4-5-20251001"),
            "max_tokens": max_tokens or self.config.get("max_tokens", 4000),
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        try:
            async with self._client() as client:
                response = await client.post(self.API_URL, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
            content = next(
                (b.get("text") for b in data.get("content", []) if b.get("type") == "text"),
                None,
            )
            usage = data.get("usage") or {}
            tokens_used = {
                "input": usage.get("input_tokens", 0),
                "output": usage.get("output_tokens", 0),
            }
        except httpx.HTTPStatusError as e:
            return self._http_error(e)
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")
        except MALFORMED_REPLY as e:
            return self._malformed_reply(e)

        return CompletionResult(success=True, content=content, tokens_used=tokens_used)
