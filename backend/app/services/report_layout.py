"""Fixed screening-report page geometry and placement primitives.

Every box is expressed in PDF points with a top-left origin; the encoder flips
to the PDF bottom-left convention. Geometry is derived once from the page size
and margin and never recomputed per request.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

ELLIPSIS = "..."
_EPS = 1e-6
FONT_STEP = 0.5
TITLE_MIN_FONT_SIZE = 10.0


class CompositionInvariantError(RuntimeError):
    """The template or its geometry is malformed. Always fatal for a report."""


class Overflow(str, Enum):
    STRICT = "STRICT"
    TRUNCATE = "TRUNCATE"


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def contains(self, other: "Box") -> bool:
        return (
            other.x >= self.x - _EPS
            and other.y >= self.y - _EPS
            and other.right <= self.right + _EPS
            and other.bottom <= self.bottom + _EPS
        )


@dataclass(frozen=True)
class TextStyle:
    font_name: str = "Helvetica"
    font_size: float = 9.0
    color: str = "#000000"
    align: str = "left"
    leading: float | None = None


# ---------------------------------------------------------------------------
# Draw operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextRun:
    text: str
    x: float
    baseline: float
    style: TextStyle


@dataclass(frozen=True)
class ImagePlacement:
    name: str
    data: bytes = field(repr=False)
    box: Box
    pixel_width: int
    pixel_height: int


@dataclass(frozen=True)
class RectOp:
    box: Box
    fill_color: str | None = None
    stroke_color: str | None = None
    line_width: float = 1.0
    radius: float = 0.0
    dash: tuple[float, ...] | None = None


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str = "#DDDDDD"
    line_width: float = 1.0


DrawOp = Union[TextRun, ImagePlacement, RectOp, LineOp]


@dataclass(frozen=True)
class ComposedPage:
    width: float
    height: float
    operations: tuple[DrawOp, ...]

    def texts(self) -> list[str]:
        return [op.text for op in self.operations if isinstance(op, TextRun)]

    def images(self) -> list[ImagePlacement]:
        return [op for op in self.operations if isinstance(op, ImagePlacement)]


# ---------------------------------------------------------------------------
# Template data
# ---------------------------------------------------------------------------

COLORS: Mapping[str, str] = MappingProxyType(
    {
        "text": "#333333",
        "muted": "#555555",
        "ink": "#000000",
        "inverse": "#FFFFFF",
        "panel": "#FFF0F5",
        "panel_header": "#000000",
        "badge_border": "#FFB6C1",
        "rule": "#DDDDDD",
        "image_border": "#DDDDDD",
        "disclaimer_title": "#800020",
        "footer": "#FFF0F5",
    }
)

STYLES: Mapping[str, TextStyle] = MappingProxyType(
    {
        "title": TextStyle("Helvetica-Bold", 16, COLORS["ink"], "center"),
        "date": TextStyle("Helvetica", 11, COLORS["muted"], "center"),
        "panel_header": TextStyle("Helvetica", 12, COLORS["inverse"], "left"),
        "label": TextStyle("Helvetica-Bold", 9, COLORS["muted"], "left"),
        "value": TextStyle("Helvetica", 9, COLORS["ink"], "left"),
        "section_heading": TextStyle("Helvetica", 12, COLORS["ink"], "left"),
        "caption": TextStyle("Helvetica-Bold", 10, COLORS["text"], "center"),
        "remarks_label": TextStyle("Helvetica-Bold", 10, COLORS["text"], "left"),
        "disclaimer_title": TextStyle("Helvetica-Bold", 8.5, COLORS["disclaimer_title"], "left"),
        "disclaimer": TextStyle("Helvetica", 7.5, COLORS["text"], "left", leading=9.0),
        "powered_by_label": TextStyle("Helvetica", 8, COLORS["text"], "right"),
        "powered_by_mark": TextStyle("Helvetica-Bold", 11, COLORS["ink"], "right"),
    }
)

SUBJECT_ROWS: tuple[tuple[str, str], ...] = (
    ("name", "Name:"),
    ("address", "Address:"),
    ("contact", "Contact:"),
    ("gender", "Gender:"),
    ("age", "Age:"),
    ("weight", "Weight:"),
    ("height", "Height:"),
)

EXAMINER_ROWS: tuple[tuple[str, str], ...] = (
    ("hospital_name", "Hospital Name:"),
    ("hospital_address", "Hospital Address:"),
    ("doctor_name", "Doctor Name:"),
    ("designation", "Designation:"),
    ("screening_place", "Screening Place:"),
)

SECTIONS: tuple[str, ...] = ("left", "right")
COLUMNS_PER_SECTION = 3

# Slot value -> box that defines its canonical pixel size.
IMAGE_SLOT_BOXES: Mapping[str, str] = MappingProxyType(
    {
        "leftTop": "left.image.0",
        "leftCenter": "left.image.1",
        "leftBottom": "left.image.2",
        "rightTop": "right.image.0",
        "rightCenter": "right.image.1",
        "rightBottom": "right.image.2",
        "hospitalLogo": "header.hospital_logo",
        "sectionIcon": "left.icon",
        "brandLogo": "header.brand_logo",
    }
)


@dataclass(frozen=True)
class PageGeometry:
    page_width: float
    page_height: float
    margin: float
    raster_scale: float
    boxes: Mapping[str, Box]

    @property
    def page_box(self) -> Box:
        return Box(0.0, 0.0, self.page_width, self.page_height)

    @property
    def content_box(self) -> Box:
        return Box(
            self.margin,
            self.margin,
            self.page_width - 2 * self.margin,
            self.page_height - 2 * self.margin,
        )

    def box(self, name: str) -> Box:
        try:
            return self.boxes[name]
        except KeyError as exc:
            raise CompositionInvariantError(f"Geometry box '{name}' is not defined") from exc

    def pixel_size(self, name: str) -> tuple[int, int]:
        b = self.box(name)
        return round(b.width * self.raster_scale), round(b.height * self.raster_scale)

    def slot_pixel_size(self, slot: str) -> tuple[int, int]:
        try:
            box_name = IMAGE_SLOT_BOXES[slot]
        except KeyError as exc:
            raise CompositionInvariantError(f"No image box declared for slot '{slot}'") from exc
        return self.pixel_size(box_name)


def build_page_geometry(
    page_size: tuple[float, float] = A4,
    margin: float = 10 * mm,
    raster_scale: float = 2.0,
) -> PageGeometry:
    page_w, page_h = page_size
    left = margin
    right = page_w - margin
    content_w = right - left
    boxes: dict[str, Box] = {}

    # Header: primary logo left, title/date centered, hospital logo right, rule below.
    header_top = margin
    boxes["header.brand_logo"] = Box(left, header_top + 2 * mm, 36 * mm, 24 * mm)
    boxes["header.hospital_logo"] = Box(right - 24 * mm, header_top + 2 * mm, 24 * mm, 24 * mm)
    title_x = left + 40 * mm
    title_w = content_w - 80 * mm
    boxes["header.title"] = Box(title_x, header_top + 5 * mm, title_w, 10 * mm)
    boxes["header.date"] = Box(title_x, header_top + 16 * mm, title_w, 8 * mm)
    boxes["header.rule"] = Box(left, header_top + 29.5 * mm, content_w, 1.0)

    # Detail panels.
    details_top = header_top + 34 * mm
    panel_gap = 6 * mm
    panel_w = (content_w - panel_gap) / 2
    panel_h = 60 * mm
    band_h = 9 * mm
    pad = 4 * mm
    label_w = 32 * mm
    row_step = 6.2 * mm
    row_h = 5.5 * mm
    for prefix, rows, panel_x in (
        ("subject", SUBJECT_ROWS, left),
        ("examiner", EXAMINER_ROWS, left + panel_w + panel_gap),
    ):
        boxes[f"{prefix}.panel"] = Box(panel_x, details_top, panel_w, panel_h)
        boxes[f"{prefix}.header"] = Box(panel_x, details_top, panel_w, band_h)
        boxes[f"{prefix}.header_text"] = Box(panel_x + pad, details_top, panel_w - 2 * pad, band_h)
        rows_top = details_top + band_h + pad
        for index, (key, _label) in enumerate(rows):
            row_y = rows_top + index * row_step
            boxes[f"{prefix}.{key}.label"] = Box(panel_x + pad, row_y, label_w, row_h)
            boxes[f"{prefix}.{key}.value"] = Box(
                panel_x + pad + label_w,
                row_y,
                panel_w - 2 * pad - label_w,
                row_h,
            )

    # Screening sections: pill badge, then three captioned image columns.
    badge_w = 92 * mm
    badge_h = 11 * mm
    caption_h = 5 * mm
    image_side = 38 * mm
    column_w = content_w / COLUMNS_PER_SECTION
    section_h = badge_h + 3 * mm + caption_h + 1 * mm + image_side
    section_top = details_top + panel_h + 4 * mm
    for prefix in SECTIONS:
        badge = Box((page_w - badge_w) / 2, section_top, badge_w, badge_h)
        boxes[f"{prefix}.badge"] = badge
        boxes[f"{prefix}.icon"] = Box(badge.x + 3 * mm, badge.y + 1.5 * mm, 8 * mm, 8 * mm)
        boxes[f"{prefix}.heading"] = Box(badge.x + 13 * mm, badge.y + 1 * mm, badge_w - 16 * mm, badge_h - 2 * mm)
        caption_y = badge.bottom + 3 * mm
        image_y = caption_y + caption_h + 1 * mm
        for column in range(COLUMNS_PER_SECTION):
            column_x = left + column * column_w
            boxes[f"{prefix}.caption.{column}"] = Box(column_x, caption_y, column_w, caption_h)
            boxes[f"{prefix}.image.{column}"] = Box(
                column_x + (column_w - image_side) / 2,
                image_y,
                image_side,
                image_side,
            )
        section_top += section_h + 4 * mm

    # Remarks: label and two blank rules.
    remarks_top = section_top + 1 * mm
    boxes["remarks.label"] = Box(left, remarks_top, content_w, 6 * mm)
    boxes["remarks.rule.0"] = Box(left, remarks_top + 13 * mm, content_w, 1.0)
    boxes["remarks.rule.1"] = Box(left, remarks_top + 22 * mm, content_w, 1.0)

    # Footer pinned to the bottom margin.
    footer_h = 20 * mm
    footer = Box(left, page_h - margin - footer_h, content_w, footer_h)
    boxes["footer"] = footer
    boxes["footer.disclaimer_title"] = Box(footer.x + 3 * mm, footer.y + 2 * mm, 128 * mm, 4.5 * mm)
    boxes["footer.disclaimer"] = Box(footer.x + 3 * mm, footer.y + 7 * mm, 128 * mm, 12 * mm)
    boxes["footer.powered_by_label"] = Box(footer.right - 52 * mm, footer.y + 4 * mm, 49 * mm, 5 * mm)
    boxes["footer.powered_by_mark"] = Box(footer.right - 52 * mm, footer.y + 10 * mm, 49 * mm, 7 * mm)

    return PageGeometry(
        page_width=page_w,
        page_height=page_h,
        margin=margin,
        raster_scale=raster_scale,
        boxes=MappingProxyType(boxes),
    )


def required_box_names() -> list[str]:
    names = [
        "header.brand_logo",
        "header.hospital_logo",
        "header.title",
        "header.date",
        "header.rule",
        "remarks.label",
        "remarks.rule.0",
        "remarks.rule.1",
        "footer",
        "footer.disclaimer_title",
        "footer.disclaimer",
        "footer.powered_by_label",
        "footer.powered_by_mark",
    ]
    for prefix, rows in (("subject", SUBJECT_ROWS), ("examiner", EXAMINER_ROWS)):
        names += [f"{prefix}.panel", f"{prefix}.header", f"{prefix}.header_text"]
        for key, _label in rows:
            names += [f"{prefix}.{key}.label", f"{prefix}.{key}.value"]
    for prefix in SECTIONS:
        names += [f"{prefix}.badge", f"{prefix}.icon", f"{prefix}.heading"]
        for column in range(COLUMNS_PER_SECTION):
            names += [f"{prefix}.caption.{column}", f"{prefix}.image.{column}"]
    return names


def validate_geometry(geometry: PageGeometry) -> None:
    errors: list[str] = []
    content = geometry.content_box
    for name in required_box_names():
        b = geometry.boxes.get(name)
        if b is None:
            errors.append(f"missing box '{name}'")
            continue
        if b.width <= 0 or b.height <= 0:
            errors.append(f"box '{name}' has non-positive size")
        if not content.contains(b):
            errors.append(f"box '{name}' lies outside the page margins")

    for slot, box_name in IMAGE_SLOT_BOXES.items():
        if box_name not in geometry.boxes:
            continue
        px_w, px_h = geometry.pixel_size(box_name)
        if px_w <= 0 or px_h <= 0:
            errors.append(f"slot '{slot}' has an empty pixel size")

    for prefix in SECTIONS:
        names = [f"{prefix}.icon", f"{prefix}.heading"]
        badge = geometry.boxes.get(f"{prefix}.badge")
        if badge is None:
            continue
        for name in names:
            inner = geometry.boxes.get(name)
            if inner is not None and not badge.contains(inner):
                errors.append(f"box '{name}' does not fit inside its badge")
        icon = geometry.boxes.get(f"{prefix}.icon")
        if icon is not None and "left.icon" in geometry.boxes:
            if geometry.pixel_size(f"{prefix}.icon") != geometry.pixel_size("left.icon"):
                errors.append(f"box '{prefix}.icon' differs in size from 'left.icon'")

    if errors:
        raise CompositionInvariantError("Invalid page geometry: " + "; ".join(errors))


DEFAULT_GEOMETRY = build_page_geometry()


# ---------------------------------------------------------------------------
# Placement primitives
# ---------------------------------------------------------------------------


def text_width(text: str, style: TextStyle) -> float:
    return stringWidth(text, style.font_name, style.font_size)


def fit_text(text: str, style: TextStyle, max_width: float, overflow: Overflow = Overflow.STRICT) -> str:
    """Return ``text`` if it fits ``max_width``; otherwise apply ``overflow``.

    STRICT raises. TRUNCATE drops trailing characters and appends "...".
    """
    if text_width(text, style) <= max_width + _EPS:
        return text
    if overflow is Overflow.STRICT:
        raise CompositionInvariantError(
            f"Text '{text[:40]}' ({text_width(text, style):.1f}pt) overflows a {max_width:.1f}pt box"
        )
    trimmed = text
    while trimmed and text_width(trimmed.rstrip() + ELLIPSIS, style) > max_width + _EPS:
        trimmed = trimmed[:-1]
    if not trimmed:
        return ELLIPSIS if text_width(ELLIPSIS, style) <= max_width + _EPS else ""
    return trimmed.rstrip() + ELLIPSIS


def shrink_to_fit(text: str, style: TextStyle, max_width: float, min_font_size: float) -> TextStyle | None:
    """Largest copy of ``style``, no smaller than ``min_font_size``, that fits ``text`` in ``max_width``."""
    size = style.font_size
    while size >= min_font_size - _EPS:
        candidate = replace(style, font_size=size)
        if text_width(text, candidate) <= max_width + _EPS:
            return candidate
        size -= FONT_STEP
    return None


def title_fits(title: str, geometry: "PageGeometry" = DEFAULT_GEOMETRY) -> bool:
    box = geometry.box("header.title")
    return shrink_to_fit(title.strip(), STYLES["title"], box.width, TITLE_MIN_FONT_SIZE) is not None


def _ellipsize_line(line: str, style: TextStyle, max_width: float) -> str:
    trimmed = line.rstrip()
    while trimmed and text_width(f"{trimmed} {ELLIPSIS}", style) > max_width + _EPS:
        trimmed = trimmed[:-1].rstrip()
    return f"{trimmed} {ELLIPSIS}" if trimmed else ELLIPSIS


BoxRef = Union[str, Box]


class PageCanvas:
    """Collects draw operations for one page; ``finish()`` freezes them."""

    def __init__(self, geometry: PageGeometry) -> None:
        self.geometry = geometry
        self._operations: list[DrawOp] = []
        self._finished = False

    def _box(self, ref: BoxRef) -> Box:
        return ref if isinstance(ref, Box) else self.geometry.box(ref)

    def _append(self, op: DrawOp) -> None:
        if self._finished:
            raise CompositionInvariantError("Page canvas is already finished")
        self._operations.append(op)

    def place_text(
        self,
        ref: BoxRef,
        text: str,
        style: TextStyle,
        *,
        overflow: Overflow = Overflow.STRICT,
        min_font_size: float | None = None,
    ) -> TextRun:
        """Place one line of text; with ``min_font_size`` the font shrinks before ``overflow`` applies."""
        box = self._box(ref)
        if min_font_size is not None:
            style = shrink_to_fit(text, style, box.width, min_font_size) or replace(style, font_size=min_font_size)
        if style.font_size > box.height + _EPS:
            raise CompositionInvariantError(
                f"Font size {style.font_size}pt does not fit a {box.height:.1f}pt tall box"
            )
        fitted = fit_text(text, style, box.width, overflow)
        width = text_width(fitted, style)
        if style.align == "center":
            x = box.center_x - width / 2
        elif style.align == "right":
            x = box.right - width
        else:
            x = box.x
        # Vertically center on the cap height (~0.7em for the base-14 fonts).
        baseline = box.center_y + style.font_size * 0.35
        run = TextRun(text=fitted, x=x, baseline=baseline, style=style)
        self._append(run)
        return run

    def place_paragraph(
        self,
        ref: BoxRef,
        text: str,
        style: TextStyle,
        *,
        overflow: Overflow = Overflow.STRICT,
    ) -> list[TextRun]:
        box = self._box(ref)
        leading = style.leading or style.font_size * 1.2
        lines = simpleSplit(text, style.font_name, style.font_size, box.width)
        max_lines = int((box.height + _EPS) // leading)
        if max_lines < 1:
            raise CompositionInvariantError(f"Paragraph box of {box.height:.1f}pt cannot hold one line")
        if len(lines) > max_lines:
            if overflow is Overflow.STRICT:
                raise CompositionInvariantError(
                    f"Paragraph needs {len(lines)} lines but its box holds {max_lines}"
                )
            lines = lines[:max_lines]
            lines[-1] = _ellipsize_line(lines[-1], style, box.width)

        runs: list[TextRun] = []
        baseline = box.y + style.font_size
        for line in lines:
            width = text_width(line, style)
            if style.align == "center":
                x = box.center_x - width / 2
            elif style.align == "right":
                x = box.right - width
            else:
                x = box.x
            run = TextRun(text=line, x=x, baseline=baseline, style=style)
            self._append(run)
            runs.append(run)
            baseline += leading
        return runs

    def place_image(self, name: str, data: bytes, pixel_size: tuple[int, int]) -> ImagePlacement:
        box = self.geometry.box(name)
        expected = self.geometry.pixel_size(name)
        if tuple(pixel_size) != expected:
            raise CompositionInvariantError(
                f"Image for '{name}' is {pixel_size[0]}x{pixel_size[1]}px, box expects {expected[0]}x{expected[1]}px"
            )
        placement = ImagePlacement(
            name=name,
            data=data,
            box=box,
            pixel_width=expected[0],
            pixel_height=expected[1],
        )
        self._append(placement)
        return placement

    def draw_rect(
        self,
        ref: BoxRef,
        *,
        fill_color: str | None = None,
        stroke_color: str | None = None,
        line_width: float = 1.0,
        radius: float = 0.0,
        dash: tuple[float, ...] | None = None,
    ) -> RectOp:
        op = RectOp(
            box=self._box(ref),
            fill_color=fill_color,
            stroke_color=stroke_color,
            line_width=line_width,
            radius=radius,
            dash=dash,
        )
        self._append(op)
        return op

    def draw_line(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        *,
        color: str = COLORS["rule"],
        line_width: float = 1.0,
    ) -> LineOp:
        op = LineOp(x1=x1, y1=y1, x2=x2, y2=y2, color=color, line_width=line_width)
        self._append(op)
        return op

    def draw_rule(self, ref: BoxRef, *, color: str = COLORS["rule"], line_width: float = 1.0) -> LineOp:
        box = self._box(ref)
        return self.draw_line(box.x, box.center_y, box.right, box.center_y, color=color, line_width=line_width)

    def finish(self) -> ComposedPage:
        self._finished = True
        return ComposedPage(
            width=self.geometry.page_width,
            height=self.geometry.page_height,
            operations=tuple(self._operations),
        )
