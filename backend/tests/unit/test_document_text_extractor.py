"""Unit tests for the DocumentTextExtractor."""

import fitz
import pytest
from docx import Document

from grounded_qa.infrastructure.extractors.document_text_extractor import (
    DocumentTextExtractor,
    detect_tables,
)
from grounded_qa.domain.exceptions import (
    FormatUnsupportedError,
    LikelyScannedDocumentError,
    PasswordProtectedError,
)


@pytest.fixture
def extractor() -> DocumentTextExtractor:
    return DocumentTextExtractor()


# ── Table heuristic ──


def test_three_aligned_lines_are_a_table():
    text = "Name\tAge\nAlice\t30\nBob\t41\nprose follows"

    assert detect_tables(text) is True


def test_two_aligned_lines_are_not_a_table():
    text = "Name    Age\nAlice    30\nprose in between\nBob    41"

    assert detect_tables(text) is False


# ── Supported formats ──


def test_supported_extensions(extractor):
    assert set(extractor.supported_extensions()) == {".pdf", ".docx", ".txt", ".md"}
    assert extractor.supports(".PDF")
    assert not extractor.supports(".doc")


@pytest.mark.asyncio
async def test_extract_txt_as_single_page(extractor, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("  First line.\nSecond line.  \n", encoding="utf-8")

    result = await extractor.extract(str(path))

    assert result.total_pages == 1
    assert result.pages[0].page_number == 1
    assert result.pages[0].text == "First line.\nSecond line."
    assert result.metadata.title == "notes.txt"


@pytest.mark.asyncio
async def test_extract_md_detects_tables(extractor, tmp_path):
    path = tmp_path / "report.md"
    path.write_text("# Results\n\nsite\tph\nA\t7.1\nB\t6.9\n", encoding="utf-8")

    result = await extractor.extract(str(path))

    assert result.pages[0].has_tables is True


@pytest.mark.asyncio
async def test_non_utf8_text_falls_back_to_latin1(extractor, tmp_path):
    path = tmp_path / "legacy.txt"
    path.write_bytes("café au lait".encode("latin-1"))

    result = await extractor.extract(str(path))

    assert result.pages[0].text == "café au lait"


# ── PDF and DOCX ──


def _write_pdf(path, page_texts, *, metadata=None, **save_options):
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    if metadata:
        doc.set_metadata(metadata)
    doc.save(str(path), **save_options)
    doc.close()


FIELD_REPORT = [
    "INTRODUCTION\nThe river survey covered twelve sites along the valley.\nSamples were taken at dawn.",
    "RESULTS\nDissolved oxygen stayed above seven milligrams per litre.\nNo site failed the standard.",
]


@pytest.mark.asyncio
async def test_pdf_pages_keep_their_numbers_and_metadata(extractor, tmp_path):
    path = tmp_path / "report.pdf"
    _write_pdf(path, FIELD_REPORT, metadata={"title": "Field Report", "author": "Survey Team"})

    result = await extractor.extract(str(path))

    assert result.total_pages == 2
    assert [p.page_number for p in result.pages] == [1, 2]
    assert result.pages[0].text.startswith("INTRODUCTION")
    assert "twelve sites" in result.pages[0].text
    assert "Dissolved oxygen" in result.pages[1].text
    assert "twelve sites" not in result.pages[1].text
    assert result.metadata.title == "Field Report"
    assert result.metadata.author == "Survey Team"


@pytest.mark.asyncio
async def test_near_empty_multi_page_pdf_is_treated_as_scanned(extractor, tmp_path):
    path = tmp_path / "scan.pdf"
    _write_pdf(path, ["p. 1", ""])

    with pytest.raises(LikelyScannedDocumentError) as exc_info:
        await extractor.extract(str(path))

    assert exc_info.value.page_count == 2
    assert exc_info.value.char_count < 100


@pytest.mark.asyncio
async def test_empty_single_page_pdf_yields_one_blank_page(extractor, tmp_path):
    path = tmp_path / "blank.pdf"
    _write_pdf(path, [""])

    result = await extractor.extract(str(path))

    assert result.total_pages == 1
    assert result.pages[0].text == ""


@pytest.mark.asyncio
async def test_encrypted_pdf_is_password_protected(extractor, tmp_path):
    path = tmp_path / "locked.pdf"
    _write_pdf(
        path,
        FIELD_REPORT,
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw="owner-secret",
        user_pw="reader-secret",
    )

    with pytest.raises(PasswordProtectedError) as exc_info:
        await extractor.extract(str(path))

    assert exc_info.value.filename == "locked.pdf"


@pytest.mark.asyncio
async def test_docx_is_flattened_to_one_page_with_tab_joined_tables(extractor, tmp_path):
    path = tmp_path / "survey.docx"
    doc = Document()
    doc.core_properties.title = "Site Survey"
    doc.core_properties.author = "Survey Team"
    doc.add_paragraph("SITE SURVEY")
    doc.add_paragraph("Water quality was measured at three sites.")
    table = doc.add_table(rows=3, cols=2)
    for row, (site, ph) in zip(table.rows, [("Site", "pH"), ("A", "7.1"), ("B", "6.9")]):
        row.cells[0].text = site
        row.cells[1].text = ph
    doc.save(str(path))

    result = await extractor.extract(str(path))

    assert result.total_pages == 1
    page = result.pages[0]
    assert page.page_number == 1
    assert [line for line in page.text.split("\n") if line] == [
        "SITE SURVEY",
        "Water quality was measured at three sites.",
        "Site\tpH",
        "A\t7.1",
        "B\t6.9",
    ]
    assert page.has_tables is True
    assert result.metadata.title == "Site Survey"
    assert result.metadata.author == "Survey Team"


@pytest.mark.asyncio
async def test_docx_without_title_uses_file_stem(extractor, tmp_path):
    path = tmp_path / "minutes.docx"
    doc = Document()
    doc.core_properties.title = ""
    doc.add_paragraph("The committee met on Tuesday.")
    doc.save(str(path))

    result = await extractor.extract(str(path))

    assert result.metadata.title == "minutes"
    assert result.pages[0].has_tables is False


# ── Errors ──


@pytest.mark.asyncio
async def test_legacy_doc_is_rejected_with_hint(extractor, tmp_path):
    path = tmp_path / "old.doc"
    path.write_bytes(b"\xd0\xcf\x11\xe0")

    with pytest.raises(FormatUnsupportedError) as exc_info:
        await extractor.extract(str(path))

    assert ".docx" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unknown_extension_is_rejected(extractor, tmp_path):
    path = tmp_path / "sheet.xlsx"
    path.write_bytes(b"PK")

    with pytest.raises(FormatUnsupportedError) as exc_info:
        await extractor.extract(str(path))

    assert exc_info.value.extension == ".xlsx"


@pytest.mark.asyncio
async def test_missing_file(extractor, tmp_path):
    with pytest.raises(FileNotFoundError):
        await extractor.extract(str(tmp_path / "missing.pdf"))
