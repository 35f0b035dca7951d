"""
HTTP embedding client.

Request  : POST EMBEDDING_ENDPOINT_URL
           Authorization: Bearer <EMBEDDING_API_KEY>
           Body: {"inputs": "<text>"}

Response : [[float, ...]]  (HuggingFace inference format, batch of one)
           or [float, ...] (bare vector)
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import aiohttp

from quiz_agent.errors import ProviderError
from quiz_agent.providers.base import Embedder

logger = logging.getLogger(__name__)


class HttpEmbedder(Embedder):
    """Embedder that calls a text-to-vector HTTP endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        dimensions: Optional[int] = 768,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.url = url or os.getenv("EMBEDDING_ENDPOINT_URL", "")
        self.token = token or os.getenv("EMBEDDING_API_KEY", "")
        self.dimensions = dimensions
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def embed(self, text: str) -> list[float]:
        if not self.url:
            raise ProviderError("EMBEDDING_ENDPOINT_URL is not set", provider="embedder")

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, headers=headers, json={"inputs": text}) as resp:
                    resp.raise_for_status()
                    result = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ProviderError(f"Embedding request failed: {exc}", provider="embedder") from exc

        vector = normalise_embedding(result)
        if self.dimensions and len(vector) != self.dimensions:
            raise ProviderError(
                f"Expected {self.dimensions}-dim embedding, got {len(vector)}",
                provider="embedder",
            )
        return vector


def normalise_embedding(result) -> list[float]:
    """Flatten ``[[...]]`` / ``[...]`` responses into one float vector."""
    if isinstance(result, list) and result and isinstance(result[0], list):
        result = result[0]
    if not isinstance(result, list) or not result or not all(isinstance(x, (int, float)) for x in result):
        raise ProviderError("Embedding response is not a numeric vector", provider="embedder")
    return [float(x) for x in result]
