"""Tests for PDF text extraction."""

import io

import pytest
from pypdf import PdfWriter

from chatpdf.core.exceptions import DocumentParseError
from chatpdf.services.pdf import _clean_page, extract_text


def test_page_cleanup_joins_hyphenated_words():
    assert _clean_page("  trans-\nformer   models\t ") == "transformer models"


def test_page_without_text_layer_yields_empty_text():
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)

    assert extract_text(buffer.getvalue()) == ""


def test_invalid_bytes_raise_parse_error():
    with pytest.raises(DocumentParseError):
        extract_text(b"this is not a pdf file")


@pytest.mark.parametrize("error", [KeyError("/Root"), TypeError("bad stream"),
                                   AssertionError()])
def test_malformed_structure_raises_parse_error(monkeypatch, error):
    def broken_reader(stream):
        raise error

    monkeypatch.setattr("chatpdf.services.pdf.PdfReader", broken_reader)

    with pytest.raises(DocumentParseError):
        extract_text(b"%PDF-1.7 truncated")
