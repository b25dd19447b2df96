"""PDF text extraction."""

import asyncio
import io
import re

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from chatpdf.core.exceptions import DocumentParseError


def _clean_page(text: str) -> str:
    """Collapse hyphenated line breaks and runs of spaces."""
    text = re.sub(r"-\n(?=\w)", "", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def extract_text(data: bytes) -> str:
    """
    Extract the text of every page, pages separated by blank lines.

    Args:
        data: PDF file contents.

    Returns:
        Extracted text; empty when the PDF has no text layer.

    Raises:
        DocumentParseError: If the bytes are not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = []
        for page in reader.pages:
            text = page.extract_text()
            if text:
                pages.append(_clean_page(text))
    except PdfReadError as e:
        raise DocumentParseError(f"Failed to read PDF: {str(e)}") from e
    except (ValueError, KeyError, TypeError, AssertionError) as e:
        raise DocumentParseError(
            f"Malformed PDF: {type(e).__name__}: {str(e)}") from e

    return "\n\n".join(page for page in pages if page)


async def extract_text_async(data: bytes) -> str:
    """Run :func:`extract_text` off the event loop."""
    return await asyncio.to_thread(extract_text, data)
