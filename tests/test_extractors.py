import pytest
from docx import Document

from convo_rag.core.errors import ExtractionError, UnsupportedFormatError
from convo_rag.ingestion.extractors import TextExtractor


def test_plain_text_and_markdown(tmp_path):
    txt = tmp_path / "book.txt"
    txt.write_text("Chapter 1\n\nHello there.", encoding="utf-8")
    md = tmp_path / "notes.MD"
    md.write_text("# Title\n\nBody", encoding="utf-8")

    extractor = TextExtractor()
    assert extractor.extract(txt) == "Chapter 1\n\nHello there."
    assert extractor.extract(md) == "# Title\n\nBody"


def test_docx_paragraphs_joined_by_blank_lines(tmp_path):
    path = tmp_path / "book.docx"
    doc = Document()
    doc.add_paragraph("Chapter 1")
    doc.add_paragraph("People like to be heard.")
    doc.save(str(path))

    assert TextExtractor().extract(path) == "Chapter 1\n\nPeople like to be heard."


def test_unsupported_extension(tmp_path):
    path = tmp_path / "book.epub"
    path.write_bytes(b"data")

    with pytest.raises(UnsupportedFormatError) as exc_info:
        TextExtractor().extract(path)

    assert exc_info.value.extension == ".epub"
    assert "Unsupported file format" in str(exc_info.value)


def test_missing_file(tmp_path):
    with pytest.raises(ExtractionError):
        TextExtractor().extract(tmp_path / "missing.txt")


def test_corrupt_docx_is_extraction_error(tmp_path):
    path = tmp_path / "broken.docx"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(ExtractionError):
        TextExtractor().extract(path)


def test_registered_extractor(tmp_path):
    path = tmp_path / "book.rst"
    path.write_text("ignored", encoding="utf-8")

    extractor = TextExtractor()
    extractor.register("rst", lambda p: "custom text")

    assert ".rst" in extractor.supported_extensions()
    assert extractor.extract(path) == "custom text"
