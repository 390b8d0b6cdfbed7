"""PDF page rasterisation with PyMuPDF."""

import asyncio
import logging

import fitz  # PyMuPDF

from pdfchat.errors import NonRetriableError

logger = logging.getLogger(__name__)


def render_pages(data: bytes, *, scale: float = 1.5) -> list[bytes]:
    """Render every page of a PDF to PNG bytes.

    Args:
        data: Raw PDF bytes
        scale: Zoom factor applied to both axes

    Returns:
        One PNG per page, in page order

    Raises:
        NonRetriableError: If the bytes are empty or not a readable PDF
    """
    if not data:
        raise NonRetriableError("PDF source is empty")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except RuntimeError as e:
        # FileDataError/EmptyFileError both derive from RuntimeError
        raise NonRetriableError(f"Unreadable PDF: {e}") from e

    with doc:
        matrix = fitz.Matrix(scale, scale)
        return [page.get_pixmap(matrix=matrix).tobytes("png") for page in doc]


async def render_pages_async(data: bytes, *, scale: float = 1.5) -> list[bytes]:
    """Run render_pages off the event loop."""
    pages = await asyncio.to_thread(render_pages, data, scale=scale)
    logger.info(f"[extract] rendered {len(pages)} pages at scale {scale}")
    return pages
