"""Abstract interface (port) for embedding generation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class IndexedEmbedding:
    """One vector, tagged with the position of its input text."""

    index: int
    embedding: list[float]


@dataclass
class EmbeddingBatch:
    """Raw provider response for one batch — items may be in any order."""

    items: list[IndexedEmbedding] = field(default_factory=list)
    total_tokens: int = 0
    model: str = ""


class EmbeddingProvider(ABC):
    """Port for generating text embeddings — implemented in the infrastructure layer."""

    @abstractmethod
    async def create_embeddings(
        self, texts: list[str], *, query_mode: bool = False
    ) -> EmbeddingBatch:
        """Embed one batch of texts.

        Args:
            texts: Texts to embed, at most one provider batch.
            query_mode: True when embedding a search query rather than documents.

        Returns:
            EmbeddingBatch whose items carry the input index of each vector.

        Raises:
            ProviderRateLimitedError: If the provider signals a rate limit.
            EmbeddingProviderError: For any other provider failure.
        """
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the dimensionality of the embedding vectors produced by this provider."""
        ...
