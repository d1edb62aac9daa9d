from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from app.services.report_layout import ComposedPage, ImagePlacement, LineOp, RectOp, TextRun


class EncodingError(RuntimeError):
    """A composed page could not be serialized to PDF."""


@dataclass(frozen=True)
class Document:
    pages: tuple[ComposedPage, ...]
    title: str
    author: str
    producer: str

    @property
    def page_size(self) -> tuple[float, float]:
        if not self.pages:
            raise EncodingError("Document has no pages")
        first = self.pages[0]
        return first.width, first.height


def _draw_text(c: Canvas, op: TextRun, page_h: float) -> None:
    c.setFillColor(colors.HexColor(op.style.color))
    c.setFont(op.style.font_name, op.style.font_size)
    c.drawString(op.x, page_h - op.baseline, op.text)


def _draw_image(c: Canvas, op: ImagePlacement, page_h: float) -> None:
    reader = ImageReader(BytesIO(op.data))
    actual = tuple(reader.getSize())
    if actual != (op.pixel_width, op.pixel_height):
        raise EncodingError(
            f"Image '{op.name}' is {actual[0]}x{actual[1]}px but was placed as "
            f"{op.pixel_width}x{op.pixel_height}px"
        )
    box = op.box
    c.drawImage(reader, box.x, page_h - box.bottom, width=box.width, height=box.height)


def _draw_rect(c: Canvas, op: RectOp, page_h: float) -> None:
    box = op.box
    if op.fill_color:
        c.setFillColor(colors.HexColor(op.fill_color))
    if op.stroke_color:
        c.setStrokeColor(colors.HexColor(op.stroke_color))
    c.setLineWidth(op.line_width)
    c.setDash(list(op.dash) if op.dash else [])
    stroke = 1 if op.stroke_color else 0
    fill = 1 if op.fill_color else 0
    if op.radius > 0:
        c.roundRect(box.x, page_h - box.bottom, box.width, box.height, op.radius, stroke=stroke, fill=fill)
    else:
        c.rect(box.x, page_h - box.bottom, box.width, box.height, stroke=stroke, fill=fill)


def _draw_line(c: Canvas, op: LineOp, page_h: float) -> None:
    c.setStrokeColor(colors.HexColor(op.color))
    c.setLineWidth(op.line_width)
    c.setDash([])
    c.line(op.x1, page_h - op.y1, op.x2, page_h - op.y2)


_DRAWERS = {
    TextRun: _draw_text,
    ImagePlacement: _draw_image,
    RectOp: _draw_rect,
    LineOp: _draw_line,
}


def encode_document(document: Document) -> bytes:
    """Serialize ``document`` to PDF bytes.

    Output is byte-for-byte reproducible for identical input: the canvas runs in
    invariant mode, so no creation date or random document id is embedded.
    """
    page_w, page_h = document.page_size
    for index, page in enumerate(document.pages):
        if (page.width, page.height) != (page_w, page_h):
            raise EncodingError(f"Page {index + 1} size differs from the document page size")

    buffer = BytesIO()
    c = Canvas(buffer, pagesize=(page_w, page_h), invariant=1, pageCompression=1)
    c.setTitle(document.title)
    c.setAuthor(document.author)
    c.setCreator(document.producer)
    c.setProducer(document.producer)

    try:
        for page in document.pages:
            for op in page.operations:
                drawer = _DRAWERS.get(type(op))
                if drawer is None:
                    raise EncodingError(f"Unsupported draw operation: {type(op).__name__}")
                c.saveState()
                drawer(c, op, page_h)
                c.restoreState()
            c.showPage()
        c.save()
    except EncodingError:
        raise
    except (ValueError, KeyError, TypeError, OSError, AttributeError) as exc:
        raise EncodingError(f"Unable to encode report page: {exc}") from exc

    return buffer.getvalue()
