"""Abstract repository interfaces (ports) for resource chunks, embeddings and search."""

from abc import ABC, abstractmethod

from grounded_qa.domain.entities.chunk import ResourceChunk
from grounded_qa.domain.entities.retrieval import ScoredChunk, SearchFilters


class ChunkRepository(ABC):
    """Port for chunk persistence and embedding writes."""

    @abstractmethod
    async def insert_chunks(self, chunks: list[ResourceChunk]) -> list[ResourceChunk]:
        """Persist a batch of chunks (without embeddings) and return them with IDs."""
        ...

    @abstractmethod
    async def delete_by_resource(self, resource_id: str) -> int:
        """Delete all chunks for a resource. Returns count of deleted rows."""
        ...

    @abstractmethod
    async def list_by_resource(
        self,
        resource_id: str,
        *,
        page_number: int | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[ResourceChunk]:
        """Return a resource's chunks by chunk index, optionally for one page.

        Vectors are not loaded; ``has_embedding`` tells whether one exists.
        """
        ...

    @abstractmethod
    async def count_by_resource(self, resource_id: str, *, page_number: int | None = None) -> int:
        """Count a resource's chunks, optionally for one page."""
        ...

    @abstractmethod
    async def get_chunks_without_embeddings(self, resource_id: str) -> list[ResourceChunk]:
        """Return the resource's chunks whose embedding is still null, by chunk index."""
        ...

    @abstractmethod
    async def count_chunks_without_embeddings(self, resource_id: str) -> int:
        """Return how many of the resource's chunks still lack an embedding."""
        ...

    @abstractmethod
    async def store_embeddings(self, embeddings: dict[str, list[float]]) -> int:
        """Write one batch of vectors in a single transaction.

        Each vector is written only if the chunk's embedding is currently
        null. Either the whole batch is committed or none of it is.

        Args:
            embeddings: chunk id → vector.

        Returns:
            Number of chunks actually updated.
        """
        ...


class ChunkSearchRepository(ABC):
    """Port for the two query-time rankings over a collection's chunks.

    Implementations must allow both searches to run concurrently.
    """

    @abstractmethod
    async def vector_search(
        self,
        collection_id: str,
        query_embedding: list[float],
        *,
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        """Rank embedded chunks by cosine similarity to the query vector.

        Returns:
            Up to ``top_k`` chunks, best first, scored ``1 - cosine distance``.
        """
        ...

    @abstractmethod
    async def keyword_search(
        self,
        collection_id: str,
        query: str,
        *,
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        """Rank chunks by lexical relevance to the query text.

        Returns:
            Up to ``top_k`` chunks, best first.
        """
        ...
