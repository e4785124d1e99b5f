"""Ollama local inference provider."""

from __future__ import annotations

import httpx

from ..models.provider import CompletionResult
from .base import MALFORMED_REPLY, BaseProvider


class OllamaProvider(BaseProvider):
    name = "ollama"

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult:
        endpoint = self.config.get("endpoint", "http://localhost:11434")
        body = {
            "model": self.config.get("model", "llama3.1:70b"),
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": max_tokens or self.config.get("max_tokens", 4000),
            },
        }

        try:
            async with self._client() as client:
                response = await client.post(f"{endpoint.rstrip('/')}/api/generate", json=body)
                response.raise_for_status()
                data = response.json()
            content = data.get("response", "")
        except httpx.HTTPStatusError as e:
            return self._http_error(e)
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")
        except MALFORMED_REPLY as e:
            return self._malformed_reply(e)

        return CompletionResult(success=True, content=content)
