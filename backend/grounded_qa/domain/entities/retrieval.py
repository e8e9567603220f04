"""Domain entities for query-time retrieval."""

from dataclasses import dataclass, field, replace
from enum import Enum


class RetrievalSource(str, Enum):
    """Which ranking produced a scored chunk."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


@dataclass
class SearchFilters:
    """Optional narrowing applied inside a collection."""

    resource_ids: list[str] = field(default_factory=list)
    page_numbers: list[int] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with a relevance score, produced fresh for each query."""

    chunk_id: str
    resource_id: str
    content: str
    page_number: int | None
    section_heading: str | None
    filename: str
    score: float
    source: RetrievalSource

    def rescored(self, score: float, source: RetrievalSource) -> "ScoredChunk":
        return replace(self, score=score, source=source)
