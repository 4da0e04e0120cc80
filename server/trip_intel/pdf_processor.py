import asyncio
import functools as _functools
from typing import List

from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError
from PIL import Image

from .errors import DocumentFetchError
from .logging_utils import get_logger

logger = get_logger("tripintel.pdf_processor")

# Booking confirmations rarely carry itinerary data past the first pages
MAX_PDF_PAGES = 3


class PDFProcessor:
    @staticmethod
    async def convert(pdf_bytes: bytes, max_pages: int = MAX_PDF_PAGES) -> List[Image.Image]:
        logger.start_timer("pdf_conversion")
        try:
            pages = await asyncio.get_running_loop().run_in_executor(
                None,
                _functools.partial(
                    convert_from_bytes,
                    pdf_bytes,
                    dpi=200,
                    fmt="PNG",
                    first_page=1,
                    last_page=max_pages,
                ),
            )
        except (PDFPageCountError, PDFSyntaxError, OSError) as e:
            raise DocumentFetchError(f"PDF processing failed: {e}") from e
        finally:
            elapsed = logger.end_timer("pdf_conversion")

        logger.event("pdf_converted", pages=len(pages), duration_ms=int(elapsed * 1000))
        if not pages:
            raise DocumentFetchError("PDF has no renderable pages")
        return pages
