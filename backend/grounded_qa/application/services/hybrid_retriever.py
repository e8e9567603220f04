"""Hybrid retriever — vector and keyword search fused with Reciprocal Rank Fusion.

RRF score for a chunk = Σ 1 / (k + rank) over every result list it appears in,
with 1-based ranks. A larger ``k`` flattens the advantage of top positions.
"""

import asyncio
import logging
import time
from enum import Enum

from grounded_qa.application.interfaces.chunk_repository import ChunkSearchRepository
from grounded_qa.application.services.embedding_service import EmbeddingService
from grounded_qa.domain.entities.retrieval import RetrievalSource, ScoredChunk, SearchFilters
from grounded_qa.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

logger = logging.getLogger(__name__)
plog = PipelineLogger("HybridRetriever")

DEFAULT_TOP_K = 10
DEFAULT_RRF_CONSTANT = 60
# Each ranking contributes this many candidates per requested result
CANDIDATE_MULTIPLIER = 2


class SearchMode(str, Enum):
    """Which ranking a search request uses."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


def reciprocal_rank_fusion(
    ranked_lists: list[list[ScoredChunk]],
    *,
    constant: int = DEFAULT_RRF_CONSTANT,
    top_k: int | None = None,
) -> list[ScoredChunk]:
    """Fuse several best-first rankings into one.

    Chunks are keyed by id; the first occurrence supplies the chunk's
    fields. Ties keep first-seen order.
    """
    fused: dict[str, ScoredChunk] = {}
    scores: dict[str, float] = {}

    for ranking in ranked_lists:
        for rank, chunk in enumerate(ranking, start=1):
            contribution = 1.0 / (constant + rank)
            if chunk.chunk_id in scores:
                scores[chunk.chunk_id] += contribution
            else:
                fused[chunk.chunk_id] = chunk
                scores[chunk.chunk_id] = contribution

    results = [
        fused[chunk_id].rescored(scores[chunk_id], RetrievalSource.HYBRID)
        for chunk_id in fused
    ]
    # sorted() is stable, so equal scores keep first-seen order
    results = sorted(results, key=lambda c: c.score, reverse=True)
    return results[:top_k] if top_k is not None else results


class HybridRetriever:
    """Application service for query-time retrieval inside one collection.

    ``hybrid_search`` runs both rankings at once, so the search repository
    must not share a single database session between them.
    """

    def __init__(
        self,
        search_repository: ChunkSearchRepository,
        embedding_service: EmbeddingService,
        *,
        rrf_constant: int = DEFAULT_RRF_CONSTANT,
    ):
        self._search_repo = search_repository
        self._embedder = embedding_service
        self._rrf_constant = rrf_constant

    async def vector_search(
        self,
        collection_id: str,
        query_embedding: list[float],
        top_k: int = DEFAULT_TOP_K,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        return await self._search_repo.vector_search(
            collection_id, query_embedding, top_k=top_k, filters=filters
        )

    async def keyword_search(
        self,
        collection_id: str,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        return await self._search_repo.keyword_search(
            collection_id, query, top_k=top_k, filters=filters
        )

    async def hybrid_search(
        self,
        collection_id: str,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        filters: SearchFilters | None = None,
        rrf_constant: int | None = None,
    ) -> list[ScoredChunk]:
        """Embed the query, run both rankings concurrently and fuse them."""
        start = time.monotonic()
        constant = rrf_constant if rrf_constant is not None else self._rrf_constant
        candidates = top_k * CANDIDATE_MULTIPLIER

        query_embedding = await self._embedder.embed_query(query)
        vector_results, keyword_results = await asyncio.gather(
            self.vector_search(collection_id, query_embedding, candidates, filters),
            self.keyword_search(collection_id, query, candidates, filters),
        )

        results = reciprocal_rank_fusion(
            [vector_results, keyword_results], constant=constant, top_k=top_k
        )
        plog.step_complete(
            PipelineStage.RETRIEVE,
            "Hybrid search",
            vector=len(vector_results),
            keyword=len(keyword_results),
            fused=len(results),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return results

    async def search(
        self,
        collection_id: str,
        query: str,
        *,
        mode: SearchMode = SearchMode.HYBRID,
        top_k: int = DEFAULT_TOP_K,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        """Run one search in the requested mode."""
        if mode is SearchMode.VECTOR:
            query_embedding = await self._embedder.embed_query(query)
            return await self.vector_search(collection_id, query_embedding, top_k, filters)
        if mode is SearchMode.KEYWORD:
            return await self.keyword_search(collection_id, query, top_k, filters)
        return await self.hybrid_search(collection_id, query, top_k, filters)
