# infrastructure/pdf_converters.py
"""PDF page rendering for OCR of pages without a text layer."""
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence
import fitz  # PyMuPDF
from PIL import Image

from core.interfaces import IPdfToImageConverter


class PyMuPDFConverter(IPdfToImageConverter):
    """
    Renders PDF pages to PIL images, several pages at once.

    Each worker opens its own handle on the file, so rendering is thread-safe,
    and the output keeps page order.
    """

    def __init__(self, max_workers: int = 4, default_dpi: int = 300):
        self.max_workers = max_workers
        self.default_dpi = default_dpi

    def convert(
        self,
        file_path: str,
        dpi: Optional[int] = None,
        pages: Optional[Sequence[int]] = None,
    ) -> List[Image.Image]:
        """
        Render the given zero-based pages (all pages when omitted).
        Synchronous; callers run it through asyncio.to_thread.
        """
        dpi = dpi or self.default_dpi

        def render_page(page_num: int) -> Image.Image:
            with fitz.open(file_path) as doc:
                page = doc.load_page(page_num)
                mat = fitz.Matrix(dpi / 72, dpi / 72)
                pix = page.get_pixmap(matrix=mat, alpha=False)  # type: ignore

                # Convert to PIL without intermediate PNG bytes
                mode = "RGB" if pix.alpha == 0 else "RGBA"
                img = Image.frombytes(mode, (pix.width, pix.height), pix.samples)
                if mode == "RGBA":
                    img = img.convert("RGB")
                return img

        if pages is None:
            with fitz.open(file_path) as doc:
                pages = range(doc.page_count)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(render_page, pages))
