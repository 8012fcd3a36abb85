import io
import logging

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from councilwatch.errors import ParseError

logger = logging.getLogger("pdf-extractor")


def extract_pdf_text(content: bytes) -> str:
    """
    Turns PDF bytes into plain text, one page after another.

    Agenda packages can run to several hundred pages; scanned letters inside
    them simply produce empty pages, which is expected (the feedback sampler
    estimates their number from page labels instead).
    """
    if not content:
        raise ParseError("Empty PDF body")
    try:
        reader = PdfReader(io.BytesIO(content))
        pages = []
        for page in reader.pages:
            pages.append(page.extract_text() or "")
    except (PyPdfError, ValueError, KeyError) as e:
        raise ParseError(f"Could not read PDF: {e}") from e

    text = "\n".join(pages)
    logger.debug("Extracted %s chars from %s pages", len(text), len(pages))
    return text
