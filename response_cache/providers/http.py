# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Minimal async client for OpenAI-compatible HTTP APIs."""

from typing import Any

import httpx
import structlog

from ..errors import ProviderError

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT = 30.0


class OpenAIHTTPClient:
    """Authenticated JSON POSTs against an OpenAI-compatible endpoint.

    Transport failures and non-2xx responses are raised as ProviderError
    tagged with ``provider``; nothing is retried.
    """

    def __init__(
        self,
        api_key: str,
        provider: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self._api_key = api_key
        self._provider = provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        client = await self._get_client()
        try:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "provider_http_error",
                provider=self._provider,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise ProviderError(
                self._provider,
                f"{self._provider} returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("provider_request_failed", provider=self._provider, error=str(e))
            raise ProviderError(self._provider, f"{self._provider} request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self._provider, f"{self._provider} returned invalid JSON") from e

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
