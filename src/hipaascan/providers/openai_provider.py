"""OpenAI chat completions provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import MALFORMED_REPLY, BaseProvider


class OpenAIProvider(BaseProvider):
    name = "openai"
    api_key_env = "OPENAI_API_KEY"
    API_URL = "https://api.openai.com/v1/chat/completions"

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
            "model": self.config.get("model", "gpt-4o"),
            "max_tokens": max_tokens or self.config.get("max_tokens", 4000),
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        url = self.config.get("endpoint") or self.API_URL

        try:
            async with self._client() as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
            content = data["choices"][0]["message"]["content"]
            usage = data.get("usage") or {}
            tokens_used = {
                "input": usage.get("prompt_tokens", 0),
                "output": usage.get("completion_tokens", 0),
            }
        except httpx.HTTPStatusError as e:
            return self._http_error(e)
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")
        except MALFORMED_REPLY as e:
            return self._malformed_reply(e)

        return CompletionResult(success=True, content=content, tokens_used=tokens_used)
