"""Unit tests for document loading and text chunking."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from widgetbot import DocumentLoader, TextChunker


def test_load_txt_document(tmp_path):
    doc_path = tmp_path / "faq.txt"
    doc_path.write_text("Opening hours\n\nWe are open 9-5.", encoding="utf-8")

    text = DocumentLoader.load_document(doc_path)

    assert text == "Opening hours\n\nWe are open 9-5."


def test_load_markdown_document(tmp_path):
    doc_path = tmp_path / "faq.md"
    doc_path.write_text("# Shipping\n\nWe ship within 3 days.", encoding="utf-8")

    assert DocumentLoader.load_document(doc_path) == (
        "# Shipping\n\nWe ship within 3 days."
    )


def test_load_pdf_separates_pages_with_blank_lines(tmp_path):
    doc_path = tmp_path / "menu.pdf"
    doc_path.write_bytes(b"%PDF-1.4")
    pages = [
        Mock(extract_text=Mock(return_value="Page one ")),
        Mock(extract_text=Mock(return_value="")),
        Mock(extract_text=Mock(return_value="Page two")),
    ]

    with patch("widgetbot.document_processing.pypdf.PdfReader") as mock_reader:
        mock_reader.return_value.pages = pages
        text = DocumentLoader.load_document(doc_path)

    assert text == "Page one\n\nPage two"


def test_load_nonexistent_file():
    with pytest.raises(FileNotFoundError):
        DocumentLoader.load_document(Path("nonexistent_file.txt"))


def test_unsupported_file_type():
    with pytest.raises(ValueError, match="Unsupported file type"):
        DocumentLoader.load_document(Path("test.invalid"))


def test_chunker_rejects_non_positive_limits():
    with pytest.raises(ValueError, match="must be positive"):
        TextChunker(chunk_size=0)
    with pytest.raises(ValueError, match="must be positive"):
        TextChunker(max_chunks=0)


def test_paragraphs_become_chunks_in_order(text_chunker_default):
    text = "Shipping\n\nWe ship within 3 days.\n\n\n\nReturns are free."

    chunks = text_chunker_default.chunk(text)

    assert chunks == ["Shipping", "We ship within 3 days.", "Returns are free."]


@pytest.mark.parametrize("text", ["", "   ", "\n\n\n", " \n\n \t\n\n "])
def test_blank_text_yields_no_chunks(text_chunker_default, text):
    assert text_chunker_default.chunk(text) == []
    assert text_chunker_default.chunk_text(text, "tenant-1") == []


def test_single_newlines_stay_inside_a_paragraph(text_chunker_default):
    chunks = text_chunker_default.chunk("Line one\nLine two\n\nNext")

    assert chunks == ["Line one\nLine two", "Next"]


def test_long_paragraph_is_sliced_without_loss(text_chunker_small):
    paragraph = "abcdefghij" * 12  # 120 characters, chunk size 50

    chunks = text_chunker_small.chunk(paragraph)

    assert [len(chunk) for chunk in chunks] == [50, 50, 20]
    assert "".join(chunks) == paragraph


def test_every_chunk_is_bounded_and_non_empty(text_chunker_small):
    text = "\n\n".join(["short", "x" * 137, "  padded  ", "y" * 50])

    chunks = text_chunker_small.chunk(text)

    assert chunks
    for chunk in chunks:
        assert 0 < len(chunk) <= text_chunker_small.chunk_size
        assert chunk == chunk.strip()


def test_max_size_override(text_chunker_default):
    chunks = text_chunker_default.chunk("z" * 25, max_size=10)

    assert chunks == ["z" * 10, "z" * 10, "z" * 5]


@pytest.mark.parametrize("max_size", [0, -5])
def test_max_size_must_be_positive(text_chunker_default, max_size):
    with pytest.raises(ValueError, match="max_size must be positive"):
        text_chunker_default.chunk("z" * 25, max_size=max_size)


def test_chunk_cap_drops_the_tail(text_chunker_small, caplog):
    text = "\n\n".join(f"paragraph {i}" for i in range(8))

    with caplog.at_level("WARNING"):
        chunks = text_chunker_small.chunk(text)

    assert chunks == [f"paragraph {i}" for i in range(5)]
    assert "Dropping 3 chunks" in caplog.text


def test_chunk_text_metadata(text_chunker_default):
    chunks = text_chunker_default.chunk_text(
        "First paragraph.\n\nSecond one.", "tenant-1", source="upload.pdf"
    )

    assert [chunk.index for chunk in chunks] == [0, 1]
    for chunk in chunks:
        assert chunk.tenant_id == "tenant-1"
        assert chunk.source == "upload.pdf"
        assert chunk.embedding is None
        assert chunk.metadata == {
            "source": "upload.pdf",
            "index": chunk.index,
            "length": len(chunk.content),
        }


def test_chunking_is_deterministic(text_chunker_small):
    text = "alpha beta gamma\n\n" + "delta " * 30

    assert text_chunker_small.chunk(text) == text_chunker_small.chunk(text)
