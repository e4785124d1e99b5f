"""Google Gemini generateContent provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import MALFORMED_REPLY, BaseProvider


class GeminiProvider(BaseProvider):
    name = "gemini"
    api_key_env = "GEMINI_API_KEY"
    API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

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

        model = self.config.get("model", "gemini-2.5-flash")
        body = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": max_tokens or self.config.get("max_tokens", 8000),
                "responseMimeType": "application/json",
            },
        }
        url = f"{self.API_BASE}/{model}:generateContent"

        try:
            async with self._client() as client:
                response = await client.post(
                    url, json=body, headers={"x-goog-api-key": api_key}
                )
                response.raise_for_status()
                data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(p.get("text", "") for p in parts)
            usage = data.get("usageMetadata") or {}
            tokens_used = {
                "input": usage.get("promptTokenCount", 0),
                "output": usage.get("candidatesTokenCount", 0),
            }
        except httpx.HTTPStatusError as e:
            return self._http_error(e)
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")
        except MALFORMED_REPLY as e:
            return self._malformed_reply(e)

        return CompletionResult(success=True, content=content, tokens_used=tokens_used)
