"""Heading detection and sentence splitting for extracted document text.

Both functions are pure; they never modify the text they are given and
report positions against it, so the chunker can derive every offset from
a single immutable source buffer.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from grounded_qa.domain.entities.document import Section

# ── Section detection ────────────────────────────────────────────────

_MIN_HEADING_CHARS = 4

_ALL_CAPS = re.compile(r"^[A-Z\s0-9]{5,}$")
_NUMBERED_L1 = re.compile(r"^\d+\.\s+\w")
_NUMBERED_L2 = re.compile(r"^\d+\.\d+\s+\w")
_NUMBERED_L3 = re.compile(r"^\d+\.\d+\.\d+\s+\w")
_MARKDOWN = re.compile(r"^#+\s")
_MARKDOWN_PREFIX = re.compile(r"^#+")


@dataclass(frozen=True)
class _Line:
    """A stripped line together with its stripped neighbours."""

    text: str
    previous: str
    following: str


@dataclass(frozen=True)
class _HeadingRule:
    """One link of the heading chain.

    ``matches`` gates the rule. Once a gate matches no later rule is tried,
    and ``level`` decides the outcome: a level, or None for "not a heading".
    """

    name: str
    matches: Callable[[_Line], bool]
    level: Callable[[_Line], int | None]


def _fixed(level: int) -> Callable[[_Line], int | None]:
    return lambda _line: level


def _isolated_title_level(line: _Line) -> int | None:
    text = line.text
    if text[0].isupper() and text[-1] not in ".!?":
        return 2
    return None


_HEADING_RULES: tuple[_HeadingRule, ...] = (
    _HeadingRule(
        "all_caps",
        lambda line: bool(_ALL_CAPS.match(line.text)) and len(line.text) < 80,
        _fixed(1),
    ),
    _HeadingRule("numbered", lambda line: bool(_NUMBERED_L1.match(line.text)), _fixed(1)),
    _HeadingRule("numbered_sub", lambda line: bool(_NUMBERED_L2.match(line.text)), _fixed(2)),
    _HeadingRule("numbered_subsub", lambda line: bool(_NUMBERED_L3.match(line.text)), _fixed(3)),
    _HeadingRule(
        "markdown",
        lambda line: bool(_MARKDOWN.match(line.text)),
        lambda line: len(_MARKDOWN_PREFIX.match(line.text).group()),
    ),
    _HeadingRule(
        "isolated_short_line",
        lambda line: 10 <= len(line.text) < 60 and not line.previous and bool(line.following),
        _isolated_title_level,
    ),
    _HeadingRule(
        "colon_line",
        lambda line: line.text.endswith(":") and 5 <= len(line.text) < 60,
        _fixed(2),
    ),
)


def _heading_level(line: _Line) -> int | None:
    for rule in _HEADING_RULES:
        if rule.matches(line):
            return rule.level(line)
    return None


def detect_sections(text: str) -> list[Section]:
    """Find heading-delimited sections, scanning line by line.

    Rules are tried in a fixed priority order (all-caps, numbered,
    markdown, isolated short line, trailing colon) and the first rule
    whose gate matches decides. Each section ends on the line before the
    next heading; the last one runs to the final line.

    Returns:
        Ordered, non-overlapping sections; empty when no heading is found.
    """
    lines = text.split("\n")
    stripped = [line.strip() for line in lines]
    found: list[tuple[str, int, int]] = []

    for i, current in enumerate(stripped):
        if len(current) < _MIN_HEADING_CHARS:
            continue
        line = _Line(
            text=current,
            previous=stripped[i - 1] if i > 0 else "",
            following=stripped[i + 1] if i + 1 < len(stripped) else "",
        )
        level = _heading_level(line)
        if level is not None:
            found.append((_MARKDOWN.sub("", current, count=1), i, level))

    sections: list[Section] = []
    for position, (heading, start, level) in enumerate(found):
        if position + 1 < len(found):
            end = found[position + 1][1] - 1
        else:
            end = len(lines) - 1
        sections.append(Section(heading=heading, start_index=start, end_index=end, level=level))
    return sections


# ── Sentence splitting ───────────────────────────────────────────────

_ABBREVIATIONS = re.compile(r"Dr\.|Mr\.|Mrs\.|Ms\.|Jr\.|Sr\.|vs\.|e\.g\.|i\.e\.|etc\.")
_SENTENCE_END = re.compile(r"[.!?]+\s+")
_MASK = "\x00"


def _mask_abbreviations(text: str) -> str:
    # Same-length replacement keeps indices aligned with the original text.
    return _ABBREVIATIONS.sub(lambda m: m.group().replace(".", _MASK), text)


def _trimmed_span(text: str, start: int, end: int) -> tuple[int, int] | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return (start, end) if start < end else None


def sentence_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` positions of each sentence in ``text``.

    A sentence ends at ``.``, ``!`` or ``?`` followed by whitespace, except
    after a protected abbreviation (Dr., Mr., Mrs., Ms., Jr., Sr., vs.,
    e.g., i.e., etc.). Trailing text without terminal punctuation is kept as
    a final sentence. Spans exclude surrounding whitespace.
    """
    masked = _mask_abbreviations(text)
    spans: list[tuple[int, int]] = []
    start = 0
    for match in _SENTENCE_END.finditer(masked):
        span = _trimmed_span(text, start, match.end())
        if span:
            spans.append(span)
        start = match.end()
    tail = _trimmed_span(text, start, len(text))
    if tail:
        spans.append(tail)
    return spans


def split_on_sentences(text: str) -> list[str]:
    """Split ``text`` into sentences, protecting common abbreviations."""
    return [text[start:end] for start, end in sentence_spans(text)]
