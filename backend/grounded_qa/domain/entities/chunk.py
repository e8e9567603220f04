"""Domain entities for chunks — token-bounded passages and their persisted form."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class ChunkingConfig:
    """Token bounds for the chunker."""

    min_tokens: int = 300
    max_tokens: int = 800
    target_tokens: int = 500
    overlap_tokens: int = 50

    def __post_init__(self) -> None:
        if self.min_tokens <= 0 or self.max_tokens <= 0:
            raise ValueError("Token bounds must be positive")
        if self.min_tokens > self.max_tokens:
            raise ValueError(
                f"min_tokens ({self.min_tokens}) exceeds max_tokens ({self.max_tokens})"
            )
        if not self.min_tokens <= self.target_tokens <= self.max_tokens:
            raise ValueError("target_tokens must lie between min_tokens and max_tokens")
        if not 0 <= self.overlap_tokens < self.max_tokens:
            raise ValueError("overlap_tokens must be >= 0 and below max_tokens")


@dataclass(frozen=True)
class Chunk:
    """A passage produced by the chunker, before persistence.

    Offsets are character positions into the immutable concatenated
    document text (end exclusive).
    """

    content: str
    token_count: int
    page_number: int
    section_heading: str | None
    start_offset: int
    end_offset: int


@dataclass
class ResourceChunk:
    """A persisted chunk, ordered within its resource by ``chunk_index``.

    ``embedding`` stays ``None`` until the embedder (or the backfill)
    writes a vector for it. Chunks read back for listing carry
    ``has_embedding`` instead of the vector itself.
    """

    resource_id: str
    chunk_index: int
    content: str
    token_count: int
    page_number: int | None = None
    section_heading: str | None = None
    start_offset: int | None = None
    end_offset: int | None = None
    tags: list[str] = field(default_factory=list)
    embedding: list[float] | None = None
    has_embedding: bool = False
    id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
