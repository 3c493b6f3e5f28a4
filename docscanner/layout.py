"""
PDF page layout: one cleaned image per A4 page.

Geometry is computed in millimetres and converted to PDF points only when
the page is written.
"""

import asyncio
import io
import logging
from dataclasses import dataclass

import fitz  # PyMuPDF
from PIL import Image, ImageOps

from .datauri import decode_data_uri

logger = logging.getLogger(__name__)

MM_TO_PT = 72 / 25.4

EXIF_ORIENTATION = 0x0112

A4_WIDTH = 210
A4_HEIGHT = 297
MARGIN = 10


@dataclass(frozen=True)
class PageLayout:
    """Fixed page format with an equal margin on every edge."""

    page_width: float = A4_WIDTH
    page_height: float = A4_HEIGHT
    margin: float = MARGIN

    def __post_init__(self) -> None:
        if self.margin < 0:
            raise ValueError(f"margin must be >= 0, got {self.margin}")
        if self.content_width <= 0 or self.content_height <= 0:
            raise ValueError("margin leaves no room for content")

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin * 2

    @property
    def content_height(self) -> float:
        return self.page_height - self.margin * 2

    @property
    def content_ratio(self) -> float:
        return self.content_width / self.content_height


@dataclass(frozen=True)
class Placement:
    """Where an image lands on its page, in millimetres from the top left."""

    x: float
    y: float
    width: float
    height: float

    def to_rect(self) -> fitz.Rect:
        return fitz.Rect(
            self.x * MM_TO_PT,
            self.y * MM_TO_PT,
            (self.x + self.width) * MM_TO_PT,
            (self.y + self.height) * MM_TO_PT,
        )


def fit_to_page(image_width: int, image_height: int, layout: PageLayout = PageLayout()) -> Placement:
    """Scale an image to the largest size inside the content area.

    Width is tried first; if the derived height overflows, the image is
    fitted to the content height instead. The result is centered on the
    whole page, not just the content area.

    Args:
        image_width: Intrinsic width in pixels
        image_height: Intrinsic height in pixels
        layout: Page format

    Returns:
        Placement in millimetres
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Invalid image size {image_width}x{image_height}")

    ratio = image_width / image_height

    width = layout.content_width
    height = width / ratio

    if height > layout.content_height:
        height = layout.content_height
        width = height * ratio

    x = (layout.page_width - width) / 2
    y = (layout.page_height - height) / 2

    return Placement(x=x, y=y, width=width, height=height)


def upright_image(data: bytes) -> tuple[bytes, tuple[int, int]]:
    """Apply an EXIF orientation tag to the pixels.

    Phone photos are often stored sideways with a tag saying how to turn
    them. Images without such a tag come back untouched.

    Returns:
        (image bytes, (width, height)) as the image is meant to be viewed
    """
    with Image.open(io.BytesIO(data)) as img:
        if img.getexif().get(EXIF_ORIENTATION, 1) == 1:
            return data, img.size

        fmt = img.format or "PNG"
        # Rotate pixels to match EXIF orientation, then strip EXIF
        corrected = ImageOps.exif_transpose(img)
        buffer = io.BytesIO()
        if fmt == "JPEG":
            corrected.save(buffer, "JPEG", quality=95)
        else:
            corrected.save(buffer, fmt)
        return buffer.getvalue(), corrected.size


def image_size(data: bytes) -> tuple[int, int]:
    """Pixel size of an image as displayed, after any EXIF rotation."""
    return upright_image(data)[1]


class PDFRenderer:
    """Composes cleaned images into a paginated PDF."""

    def __init__(self, layout: PageLayout | None = None) -> None:
        self.layout = layout or PageLayout()

    async def render(self, image_uris: list[str | None], title: str | None = None) -> bytes:
        """Lay out images, one per page, in order.

        Entries that are None are skipped without emitting a page.

        Args:
            image_uris: Data URIs of cleaned images
            title: Optional document title metadata

        Returns:
            PDF file contents
        """
        page_width = self.layout.page_width * MM_TO_PT
        page_height = self.layout.page_height * MM_TO_PT

        doc = fitz.open()
        try:
            for index, uri in enumerate(image_uris):
                if uri is None:
                    logger.debug(f"Image {index + 1} has no cleaned result, skipping")
                    continue

                _, data = decode_data_uri(uri)
                # Decoding can be slow for large photos; keep the event loop free
                data, (width, height) = await asyncio.to_thread(upright_image, data)
                placement = fit_to_page(width, height, self.layout)

                page = doc.new_page(width=page_width, height=page_height)
                page.insert_image(placement.to_rect(), stream=data, keep_proportion=False)

            if doc.page_count == 0:
                # PyMuPDF refuses to save an empty document
                logger.warning("No images to lay out, writing a blank page")
                doc.new_page(width=page_width, height=page_height)

            if title:
                doc.set_metadata({"title": title, "creator": "docscanner"})

            pdf_bytes = doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

        logger.info(f"Rendered PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes
