"""OpenRouter-based embedding provider — calls the /embeddings endpoint.

Uses the same httpx client pattern as the OpenRouterClient.
Default model: openai/text-embedding-3-small (1536 dimensions).

Retries are not handled here; a 429 surfaces as ProviderRateLimitedError
and the EmbeddingService owns the backoff schedule.
"""

import logging
from typing import Any

import httpx

from grounded_qa.application.interfaces.embedding_provider import (
    EmbeddingBatch,
    EmbeddingProvider,
    IndexedEmbedding,
)
from grounded_qa.domain.exceptions import EmbeddingProviderError, ProviderRateLimitedError

logger = logging.getLogger(__name__)

# nomic-embed-text models require a task prefix; OpenAI models do not.
_NOMIC_DOCUMENT_PREFIX = "search_document: "
_NOMIC_QUERY_PREFIX = "search_query: "


class OpenRouterEmbeddingProvider(EmbeddingProvider):
    """Infrastructure adapter — generates embeddings via OpenRouter /embeddings API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        app_name: str = "Grounded QA",
        model: str = "openai/text-embedding-3-small",
        model_dimensions: int = 1536,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._app_name = app_name
        self._model = model
        self._dimensions = model_dimensions
        self._http_client = http_client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": self._app_name,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=120.0)

    @property
    def _is_nomic(self) -> bool:
        """Whether the configured model is a nomic model requiring task prefixes."""
        return "nomic" in self._model.lower()

    async def create_embeddings(
        self, texts: list[str], *, query_mode: bool = False
    ) -> EmbeddingBatch:
        """Embed one batch of texts; item order is whatever the provider returns.

        For nomic models, applies the appropriate task prefix automatically.
        """
        if not texts:
            return EmbeddingBatch(model=self._model)

        # Apply nomic task prefix if needed
        if self._is_nomic:
            prefix = _NOMIC_QUERY_PREFIX if query_mode else _NOMIC_DOCUMENT_PREFIX
            input_texts = [f"{prefix}{t}" for t in texts]
        else:
            input_texts = texts

        url = f"{self._base_url}/embeddings"
        payload: dict[str, Any] = {
            "model": self._model,
            "input": input_texts,
            "dimensions": self._dimensions,
        }

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            try:
                response = await client.post(
                    url, headers=self._get_headers(), json=payload
                )
            except httpx.HTTPError as e:
                raise EmbeddingProviderError(f"Embedding request failed: {e}") from e

            if response.status_code == 429:
                logger.warning("Embedding API rate limited (model=%s)", self._model)
                raise ProviderRateLimitedError()

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(
                    "Embedding API error %d: %s", response.status_code, error_text
                )
                raise EmbeddingProviderError(error_text, status_code=response.status_code)

            data = response.json()
            items = [
                IndexedEmbedding(index=item["index"], embedding=item["embedding"])
                for item in data.get("data", [])
            ]
            usage = data.get("usage") or {}

            logger.info(
                "Generated %d embeddings (model=%s, dims=%d)",
                len(items),
                self._model,
                len(items[0].embedding) if items else 0,
            )
            return EmbeddingBatch(
                items=items,
                total_tokens=usage.get("total_tokens", 0),
                model=data.get("model", self._model),
            )

        finally:
            if should_close:
                await client.aclose()
