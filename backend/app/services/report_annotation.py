from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from app.services.report_encoder import EncodingError

LOGGER = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/png;base64,"


class AnnotationError(ValueError):
    pass


def decode_overlay_data_url(data_url: str) -> bytes:
    """Decode a ``data:image/png;base64,...`` overlay and check it is a PNG."""
    value = (data_url or "").strip()
    if not value.lower().startswith(DATA_URL_PREFIX):
        raise AnnotationError("Invalid overlay format. Expected data:image/png;base64,...")
    try:
        raw = base64.b64decode(value[len(DATA_URL_PREFIX):], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AnnotationError("Failed to decode overlay base64") from exc
    if not raw:
        raise AnnotationError("Overlay image is empty")

    try:
        with Image.open(BytesIO(raw)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise AnnotationError("Overlay is not a readable image") from exc
    if image_format != "PNG":
        raise AnnotationError(f"Overlay must be a PNG image, got {image_format}")
    return raw


def _overlay_page(png_bytes: bytes, width: float, height: float):
    buffer = BytesIO()
    c = Canvas(buffer, pagesize=(width, height), invariant=1)
    c.drawImage(ImageReader(BytesIO(png_bytes)), 0, 0, width=width, height=height, mask="auto")
    c.showPage()
    c.save()
    buffer.seek(0)
    return PdfReader(buffer).pages[0]


def apply_overlay(pdf_bytes: bytes, png_bytes: bytes) -> bytes:
    """Stamp ``png_bytes`` over the whole first page; later pages are copied as-is."""
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        pages = list(reader.pages)
    except (PdfReadError, ValueError, OSError, KeyError) as exc:
        raise EncodingError(f"Stored report PDF could not be read: {exc}") from exc
    if not pages:
        raise EncodingError("Stored report PDF has no pages")

    first = pages[0]
    width = float(first.mediabox.width)
    height = float(first.mediabox.height)
    try:
        first.merge_page(_overlay_page(png_bytes, width, height))
    except (OSError, ValueError) as exc:
        raise AnnotationError(f"Overlay could not be drawn onto the report: {exc}") from exc

    writer = PdfWriter()
    for page in pages:
        writer.add_page(page)
    out = BytesIO()
    writer.write(out)
    LOGGER.info("Applied annotation overlay to a %d page report", len(pages))
    return out.getvalue()
