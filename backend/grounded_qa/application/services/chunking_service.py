"""Chunking service — turns extracted pages into token-bounded passages.

Pipeline:
    pages → concatenated text (+ page start offsets)
          → sections (heading detection)
          → one chunk per small section, sentence packing with overlap for large ones
          → merge pass for undersized chunks

Every chunk is described by ``(start, end)`` offsets into the concatenated
text; content is always sliced from that text, never rebuilt by joining
strings, so offsets and page numbers cannot drift apart.
"""

import bisect
import logging
import re
from dataclasses import dataclass

from grounded_qa.application.interfaces.token_counter import TokenCounter
from grounded_qa.application.services.text_segmenter import detect_sections, sentence_spans
from grounded_qa.domain.entities.chunk import Chunk, ChunkingConfig
from grounded_qa.domain.entities.document import ExtractionResult

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\S+")


@dataclass(frozen=True)
class _Unit:
    """A sentence (or sentence fragment) span with its token count."""

    start: int
    end: int
    tokens: int


@dataclass(frozen=True)
class _SectionSpan:
    heading: str | None
    start: int
    end: int


class _Document:
    """The immutable source buffer shared by every chunk of one document."""

    def __init__(self, text: str, page_offsets: list[int], page_numbers: list[int]):
        self.text = text
        self._page_offsets = page_offsets
        self._page_numbers = page_numbers
        self.line_starts = [0]
        for match in re.finditer("\n", text):
            self.line_starts.append(match.end())

    def page_for(self, offset: int) -> int:
        """Page whose start offset is the nearest one at or before ``offset``."""
        if not self._page_numbers:
            return 1
        position = bisect.bisect_right(self._page_offsets, offset) - 1
        return self._page_numbers[max(position, 0)]

    def line_end(self, index: int) -> int:
        if index + 1 < len(self.line_starts):
            return self.line_starts[index + 1] - 1
        return len(self.text)


class ChunkingService:
    """Application service that splits a document into retrieval-sized chunks.

    Guarantees no chunk exceeds ``max_tokens`` except when a single word is
    longer than that (there is nowhere left to split). After the merge pass,
    chunks below ``min_tokens`` remain only where no neighbour can absorb
    them without crossing ``max_tokens``, or at the end of the document.
    """

    def __init__(self, token_counter: TokenCounter, config: ChunkingConfig | None = None):
        self._counter = token_counter
        self._config = config or ChunkingConfig()

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def count_tokens(self, text: str) -> int:
        return self._counter.count(text)

    # ── Public API ───────────────────────────────────────────────────

    def chunk_document(self, extraction: ExtractionResult) -> list[Chunk]:
        """Chunk an extracted document.

        Returns:
            Chunks in document order, each tagged with its page and heading.
        """
        text, offsets = extraction.full_text()
        document = _Document(text, offsets, [p.page_number for p in extraction.pages])

        spans = self._section_spans(document)
        chunks: list[Chunk] = []
        for span in spans:
            chunks.extend(self._chunk_section(document, span))

        merged = self._merge(document, chunks)
        logger.info(
            "Chunked %d pages into %d chunks (%d sections, %d before merge)",
            extraction.total_pages,
            len(merged),
            len(spans),
            len(chunks),
        )
        return merged

    def merge_small_chunks(self, extraction: ExtractionResult, chunks: list[Chunk]) -> list[Chunk]:
        """Run only the merge pass over chunks of ``extraction``.

        Applying it to its own output returns the same list.
        """
        text, offsets = extraction.full_text()
        document = _Document(text, offsets, [p.page_number for p in extraction.pages])
        return self._merge(document, chunks)

    # ── Sections ─────────────────────────────────────────────────────

    def _section_spans(self, document: _Document) -> list[_SectionSpan]:
        sections = detect_sections(document.text)
        if not sections:
            logger.warning("No sections detected, chunking entire document")
            return [_SectionSpan(None, 0, len(document.text))]

        spans: list[_SectionSpan] = []
        first_start = document.line_starts[sections[0].start_index]
        if document.text[:first_start].strip():
            # Text before the first heading forms an untitled section.
            spans.append(_SectionSpan(None, 0, first_start))

        for section in sections:
            spans.append(
                _SectionSpan(
                    section.heading,
                    document.line_starts[section.start_index],
                    document.line_end(section.end_index),
                )
            )
        return spans

    def _chunk_section(self, document: _Document, span: _SectionSpan) -> list[Chunk]:
        start, end = self._trim(document.text, span.start, span.end)
        if start >= end:
            return []

        tokens = self._counter.count(document.text[start:end])
        if tokens <= self._config.max_tokens:
            return [self._make_chunk(document, start, end, span.heading, tokens)]
        return self._split_large_section(document, start, end, span.heading)

    # ── Sentence packing ─────────────────────────────────────────────

    def _split_large_section(
        self, document: _Document, start: int, end: int, heading: str | None
    ) -> list[Chunk]:
        units = self._sentence_units(document.text, start, end)
        limit = self._config.max_tokens

        chunks: list[Chunk] = []
        current: list[_Unit] = []
        for unit in units:
            if current and self._span_tokens(document, current[0].start, unit.end) > limit:
                chunks.append(self._chunk_from_units(document, current, heading))
                seed = self._overlap_seed(current)
                if seed and self._span_tokens(document, seed[0].start, unit.end) > limit:
                    seed = []
                current = seed
            current.append(unit)

        if current:
            chunks.append(self._chunk_from_units(document, current, heading))
        return chunks

    def _overlap_seed(self, units: list[_Unit]) -> list[_Unit]:
        """Trailing units of a finished chunk totalling at most ``overlap_tokens``."""
        seed: list[_Unit] = []
        total = 0
        for unit in reversed(units):
            if total + unit.tokens > self._config.overlap_tokens:
                break
            seed.insert(0, unit)
            total += unit.tokens
        if len(seed) == len(units):
            return []
        return seed

    def _sentence_units(self, text: str, start: int, end: int) -> list[_Unit]:
        units: list[_Unit] = []
        for s_start, s_end in sentence_spans(text[start:end]):
            a, b = start + s_start, start + s_end
            tokens = self._counter.count(text[a:b])
            if tokens <= self._config.max_tokens:
                units.append(_Unit(a, b, tokens))
            else:
                units.extend(self._word_units(text, a, b))
        return units

    def _word_units(self, text: str, start: int, end: int) -> list[_Unit]:
        """Break one oversized sentence on word boundaries."""
        units: list[_Unit] = []
        piece_start: int | None = None
        piece_end = start
        for match in _WORD.finditer(text, start, end):
            if piece_start is None:
                piece_start, piece_end = match.start(), match.end()
                continue
            if self._counter.count(text[piece_start:match.end()]) > self._config.max_tokens:
                units.append(
                    _Unit(piece_start, piece_end, self._counter.count(text[piece_start:piece_end]))
                )
                piece_start = match.start()
            piece_end = match.end()
        if piece_start is not None:
            units.append(
                _Unit(piece_start, piece_end, self._counter.count(text[piece_start:piece_end]))
            )
        return units

    # ── Merge pass ───────────────────────────────────────────────────

    def _merge(self, document: _Document, chunks: list[Chunk]) -> list[Chunk]:
        return self._fold_backward(document, self._fold_forward(document, chunks))

    def _fold_forward(self, document: _Document, chunks: list[Chunk]) -> list[Chunk]:
        """Fold each undersized chunk into its successor while the result fits."""
        merged: list[Chunk] = []
        i = 0
        while i < len(chunks):
            current = chunks[i]
            while current.token_count < self._config.min_tokens and i + 1 < len(chunks):
                candidate = self._combine(document, current, chunks[i + 1])
                if candidate is None:
                    break
                current = candidate
                i += 1
            merged.append(current)
            i += 1
        return merged

    def _fold_backward(self, document: _Document, chunks: list[Chunk]) -> list[Chunk]:
        """Fold chunks still undersized into their predecessor when that fits."""
        merged: list[Chunk] = []
        for chunk in chunks:
            if merged and chunk.token_count < self._config.min_tokens:
                candidate = self._combine(document, merged[-1], chunk)
                if candidate is not None:
                    merged[-1] = candidate
                    continue
            merged.append(chunk)
        return merged

    def _combine(self, document: _Document, first: Chunk, second: Chunk) -> Chunk | None:
        start = first.start_offset
        end = max(first.end_offset, second.end_offset)
        tokens = self._span_tokens(document, start, end)
        if tokens > self._config.max_tokens:
            return None
        return Chunk(
            content=document.text[start:end],
            token_count=tokens,
            page_number=first.page_number,
            section_heading=first.section_heading or second.section_heading,
            start_offset=start,
            end_offset=end,
        )

    # ── Helpers ──────────────────────────────────────────────────────

    def _span_tokens(self, document: _Document, start: int, end: int) -> int:
        return self._counter.count(document.text[start:end])

    def _chunk_from_units(
        self, document: _Document, units: list[_Unit], heading: str | None
    ) -> Chunk:
        start, end = units[0].start, units[-1].end
        return self._make_chunk(
            document, start, end, heading, self._span_tokens(document, start, end)
        )

    @staticmethod
    def _make_chunk(
        document: _Document, start: int, end: int, heading: str | None, tokens: int
    ) -> Chunk:
        return Chunk(
            content=document.text[start:end],
            token_count=tokens,
            page_number=document.page_for(start),
            section_heading=heading,
            start_offset=start,
            end_offset=end,
        )

    @staticmethod
    def _trim(text: str, start: int, end: int) -> tuple[int, int]:
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        return start, end
