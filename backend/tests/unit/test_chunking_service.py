"""Unit tests for the ChunkingService."""

import bisect

import pytest

from grounded_qa.application.interfaces.token_counter import TokenCounter
from grounded_qa.application.services.chunking_service import ChunkingService
from grounded_qa.domain.entities import ChunkingConfig, ExtractedPage, ExtractionResult


# ── Fakes ────────────────────────────────────────────────────────────


class WhitespaceTokenCounter(TokenCounter):
    """One token per whitespace-separated word."""

    def count(self, text: str) -> int:
        return len(text.split())


SMALL = ChunkingConfig(min_tokens=30, max_tokens=80, target_tokens=50, overlap_tokens=10)


def _sentence(i: int) -> str:
    # Ten words, one sentence.
    return f"sentence {i} alpha alpha alpha alpha alpha alpha alpha end."


def _page(number: int, first: int, count: int) -> ExtractedPage:
    return ExtractedPage(
        page_number=number,
        text=" ".join(_sentence(i) for i in range(first, first + count)),
    )


def _make_service(config: ChunkingConfig = SMALL) -> ChunkingService:
    return ChunkingService(WhitespaceTokenCounter(), config)


def _three_pages() -> ExtractionResult:
    return ExtractionResult(pages=[_page(1, 0, 12), _page(2, 12, 12), _page(3, 24, 12)])


# ── Tests ──


@pytest.mark.parametrize(
    "config",
    [
        SMALL,
        ChunkingConfig(min_tokens=20, max_tokens=45, target_tokens=30, overlap_tokens=0),
        ChunkingConfig(min_tokens=50, max_tokens=120, target_tokens=80, overlap_tokens=20),
        ChunkingConfig(min_tokens=100, max_tokens=200, target_tokens=150, overlap_tokens=50),
    ],
    ids=["small", "no-overlap", "medium", "large"],
)
def test_three_page_document_respects_bounds(config):
    extraction = _three_pages()

    chunks = _make_service(config).chunk_document(extraction)

    assert len(chunks) > 1
    assert all(c.token_count <= config.max_tokens for c in chunks)
    assert all(c.token_count >= config.min_tokens for c in chunks[:-1])


def test_one_section_per_headed_page_with_default_bounds():
    headings = ["INTRODUCTION", "THE DUNGEON", "FINAL NOTES"]
    pages = [
        ExtractedPage(
            page_number=n,
            text=heading + "\n" + " ".join(_sentence(i) for i in range(40 * n, 40 * n + 40)),
        )
        for n, heading in enumerate(headings, start=1)
    ]
    extraction = ExtractionResult(pages=pages)

    chunks = _make_service(ChunkingConfig()).chunk_document(extraction)

    assert [(c.section_heading, c.page_number, c.token_count) for c in chunks] == [
        ("INTRODUCTION", 1, 401),
        ("THE DUNGEON", 2, 402),
        ("FINAL NOTES", 3, 402),
    ]
    for chunk, page in zip(chunks, pages):
        assert chunk.content == page.text


def test_content_is_a_slice_of_the_document_text():
    extraction = _three_pages()
    text, _ = extraction.full_text()

    chunks = _make_service().chunk_document(extraction)

    for chunk in chunks:
        assert chunk.content == text[chunk.start_offset : chunk.end_offset]
        assert chunk.token_count == len(chunk.content.split())


def test_page_numbers_follow_start_offsets():
    extraction = _three_pages()
    _, offsets = extraction.full_text()

    chunks = _make_service().chunk_document(extraction)

    for chunk in chunks:
        expected = bisect.bisect_right(offsets, chunk.start_offset)
        assert chunk.page_number == expected
    assert {c.page_number for c in chunks} == {1, 2, 3}


def test_consecutive_chunks_overlap_and_advance():
    chunks = _make_service().chunk_document(_three_pages())

    for previous, current in zip(chunks, chunks[1:]):
        assert current.start_offset > previous.start_offset
        assert current.start_offset < previous.end_offset


def test_merge_pass_is_idempotent():
    service = _make_service()
    extraction = _three_pages()
    chunks = service.chunk_document(extraction)

    assert service.merge_small_chunks(extraction, chunks) == chunks


def test_small_sections_are_merged_forward():
    extraction = ExtractionResult(
        pages=[
            ExtractedPage(
                page_number=1,
                text="INTRODUCTION\nThe study looks at rivers.\nMETHODS\nWe sampled water weekly.",
            )
        ]
    )

    chunks = _make_service().chunk_document(extraction)

    assert len(chunks) == 1
    assert chunks[0].section_heading == "INTRODUCTION"
    assert "METHODS" in chunks[0].content
    assert chunks[0].content.endswith("weekly.")


def test_text_before_first_heading_is_an_untitled_section():
    config = ChunkingConfig(min_tokens=1, max_tokens=80, target_tokens=50, overlap_tokens=10)
    extraction = ExtractionResult(
        pages=[
            ExtractedPage(
                page_number=1,
                text="opening prose sentence here.\nMETHODS\nWe sampled water weekly.",
            )
        ]
    )

    chunks = _make_service(config).chunk_document(extraction)

    assert [c.section_heading for c in chunks] == [None, "METHODS"]
    assert chunks[0].content == "opening prose sentence here."


def test_oversized_sentence_is_split_on_words():
    words = " ".join(f"w{i}" for i in range(200))
    extraction = ExtractionResult(pages=[ExtractedPage(page_number=1, text=words)])

    chunks = _make_service().chunk_document(extraction)

    assert [c.token_count for c in chunks] == [80, 80, 40]
    assert " ".join(c.content for c in chunks) == words


def test_empty_document_produces_no_chunks():
    extraction = ExtractionResult(pages=[ExtractedPage(page_number=1, text="")])

    assert _make_service().chunk_document(extraction) == []


def test_default_config_bounds():
    config = _make_service(ChunkingConfig()).config

    assert (config.min_tokens, config.max_tokens, config.target_tokens, config.overlap_tokens) == (
        300,
        800,
        500,
        50,
    )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_tokens": 0},
        {"min_tokens": 900},
        {"target_tokens": 100},
        {"overlap_tokens": 800},
    ],
)
def test_invalid_config_is_rejected(kwargs):
    with pytest.raises(ValueError):
        ChunkingConfig(**kwargs)
