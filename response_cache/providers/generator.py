# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Generative response providers and prompt assembly."""

from typing import Protocol, runtime_checkable

import httpx

from ..errors import ProviderError
from .http import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, OpenAIHTTPClient

CHAT_MODEL = "gpt-3.5-turbo"


def build_prompt(
    query: str,
    prompt_prefix: str | None = None,
    additional_context: str | None = None,
) -> str:
    """Prefix line, context line, then the user query."""
    parts = [part for part in (prompt_prefix, additional_context) if part]
    parts.append(query)
    return "\n".join(parts)


@runtime_checkable
class ResponseGenerator(Protocol):
    """Turns a prompt into a natural-language answer."""

    async def generate(self, prompt: str) -> str:
        ...


class OpenAIChatGenerator:
    """Single-turn OpenAI chat completion."""

    name = "openai-chat"

    def __init__(
        self,
        api_key: str,
        model: str = CHAT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._http = OpenAIHTTPClient(api_key, self.name, base_url=base_url, timeout=timeout, client=client)

    async def generate(self, prompt: str) -> str:
        data = await self._http.post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "Malformed chat completion response") from e
        if not isinstance(content, str):
            raise ProviderError(self.name, "Chat completion returned no text")
        return content.strip()

    async def aclose(self) -> None:
        await self._http.aclose()
