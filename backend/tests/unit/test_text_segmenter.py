"""Unit tests for heading detection and sentence splitting."""

from grounded_qa.application.services.text_segmenter import (
    detect_sections,
    sentence_spans,
    split_on_sentences,
)


# ── Section detection ──


def test_all_caps_and_numbered_headings():
    text = "INTRODUCTION\nSome text here.\n1. Background\nMore text."

    sections = detect_sections(text)

    assert [(s.heading, s.start_index, s.end_index, s.level) for s in sections] == [
        ("INTRODUCTION", 0, 1, 1),
        ("1. Background", 2, 3, 1),
    ]


def test_numbered_sublevels():
    text = "2.1 Setup\nbody\n2.1.3 Detail\nbody"

    levels = [(s.heading, s.level) for s in detect_sections(text)]

    assert levels == [("2.1 Setup", 2), ("2.1.3 Detail", 3)]


def test_markdown_heading_level_and_prefix_removed():
    sections = detect_sections("## Methods\nWe sampled water weekly.")

    assert sections[0].heading == "Methods"
    assert sections[0].level == 2


def test_isolated_title_line():
    text = "intro line that is long enough to not be a title at all.\n\nResults and Discussion\nThe rivers were clean."

    sections = detect_sections(text)

    assert [(s.heading, s.level) for s in sections] == [("Results and Discussion", 2)]


def test_isolated_sentence_is_not_a_heading():
    # The isolated-line gate matches, so the colon rule is never consulted.
    text = "\nThis is a sentence.\nfollowing text"

    assert detect_sections(text) == []


def test_colon_line_heading():
    text = "some opening words\nKey findings:\nthe water was clean"

    sections = detect_sections(text)

    assert [(s.heading, s.level) for s in sections] == [("Key findings:", 2)]


def test_short_lines_are_ignored():
    assert detect_sections("ABC\nshort") == []


def test_last_section_runs_to_final_line():
    text = "SUMMARY\none\ntwo\nthree"

    sections = detect_sections(text)

    assert sections[0].end_index == 3


def test_no_headings():
    assert detect_sections("just some lowercase prose without any structure.") == []


# ── Sentence splitting ──


def test_split_protects_abbreviations():
    text = "Dr. Smith arrived. He said hi! Was it e.g. fine? Yes"

    assert split_on_sentences(text) == [
        "Dr. Smith arrived.",
        "He said hi!",
        "Was it e.g. fine?",
        "Yes",
    ]


def test_sentence_spans_point_into_original_text():
    text = "  One. Two."

    spans = sentence_spans(text)

    assert spans == [(2, 6), (7, 11)]
    assert [text[a:b] for a, b in spans] == ["One.", "Two."]


def test_empty_text_has_no_sentences():
    assert split_on_sentences("   ") == []
