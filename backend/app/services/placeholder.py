from __future__ import annotations

import re
from functools import lru_cache

from PIL import Image, ImageDraw, ImageFont

from app.services.image_normalizer import encode_canonical

PLACEHOLDER_HEADER = "Image Missing"
MAX_LABEL_CHARS = 28

PANEL_FILL = (240, 240, 240)
PANEL_BORDER = (204, 204, 204)
INNER_FILL = (255, 255, 255)
INNER_BORDER = (221, 221, 221)
CAPTION_COLOR = (136, 136, 136)


def humanize_label(label: str) -> str:
    spaced = re.sub(r"(?<=[a-z0-9])([A-Z])", r" \1", label or "").strip()
    spaced = spaced[:1].upper() + spaced[1:]
    if len(spaced) > MAX_LABEL_CHARS:
        spaced = spaced[: MAX_LABEL_CHARS - 3].rstrip() + "..."
    return spaced


@lru_cache(maxsize=16)
def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _dashed_rect(draw: ImageDraw.ImageDraw, box: tuple[int, int, int, int], *, dash: int, width: int) -> None:
    left, top, right, bottom = box
    for x in range(left, right, dash * 2):
        end = min(x + dash, right)
        draw.line([(x, top), (end, top)], fill=INNER_BORDER, width=width)
        draw.line([(x, bottom), (end, bottom)], fill=INNER_BORDER, width=width)
    for y in range(top, bottom, dash * 2):
        end = min(y + dash, bottom)
        draw.line([(left, y), (left, end)], fill=INNER_BORDER, width=width)
        draw.line([(right, y), (right, end)], fill=INNER_BORDER, width=width)


def _fitted_font(draw: ImageDraw.ImageDraw, text: str, size: int, max_width: float, min_size: int = 6):
    font = _font(size)
    while size > min_size:
        left, _, right, _ = draw.textbbox((0, 0), text, font=font)
        if right - left <= max_width:
            break
        size -= 1
        font = _font(size)
    return font


def _centered_text(draw: ImageDraw.ImageDraw, text: str, center_y: float, width: int, font, fill) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (width - (right - left)) / 2 - left
    y = center_y - (bottom - top) / 2 - top
    draw.text((x, y), text, font=font, fill=fill)


def _geometry(width: int, height: int) -> tuple[int, int]:
    stroke = max(1, round(min(width, height) / 130))
    inset = max(2, round(min(width, height) * 10 / 130))
    return stroke, inset


def caption_room(width: int, height: int) -> int:
    stroke, inset = _geometry(width, height)
    return max(1, width - 2 * inset - 2 * stroke - 4)


def placeholder_captions(draw: ImageDraw.ImageDraw, label: str, width: int, height: int):
    """Return ``(header_font, caption, caption_font)`` sized to fit inside the dashed panel."""
    room = caption_room(width, height)
    caption = humanize_label(label)
    header_font = _fitted_font(draw, PLACEHOLDER_HEADER, max(6, round(height * 14 / 130)), room)
    label_font = _fitted_font(draw, caption, max(6, round(height * 12 / 130)), room)
    return header_font, caption, label_font


def synthesize_placeholder(label: str, width: int, height: int, *, quality: int = 90) -> bytes:
    """Draw the "Image Missing" panel at exactly ``width`` x ``height`` pixels."""
    width = max(int(width), 1)
    height = max(int(height), 1)
    image = Image.new("RGB", (width, height), PANEL_FILL)
    draw = ImageDraw.Draw(image)

    stroke, inset = _geometry(width, height)
    draw.rectangle([(0, 0), (width - 1, height - 1)], outline=PANEL_BORDER, width=stroke * 2)

    inner = (inset, inset, width - 1 - inset, height - 1 - inset)
    if inner[2] > inner[0] and inner[3] > inner[1]:
        draw.rectangle(inner, fill=INNER_FILL)
        _dashed_rect(draw, inner, dash=max(2, stroke * 5), width=stroke)

    header_font, caption, label_font = placeholder_captions(draw, label, width, height)
    _centered_text(draw, PLACEHOLDER_HEADER, height * 0.40, width, header_font, CAPTION_COLOR)
    _centered_text(draw, caption, height * 0.60, width, label_font, CAPTION_COLOR)
    return encode_canonical(image, quality=quality)


def synthesize_hospital_monogram(width: int, height: int, *, quality: int = 90) -> bytes:
    image = Image.new("RGB", (max(width, 1), max(height, 1)), (243, 244, 246))
    draw = ImageDraw.Draw(image)
    _centered_text(draw, "H", height / 2, width, _font(max(8, round(height * 0.3))), (55, 65, 81))
    return encode_canonical(image, quality=quality)


def synthesize_section_icon(width: int, height: int, *, quality: int = 90) -> bytes:
    image = Image.new("RGB", (max(width, 1), max(height, 1)), (255, 255, 255))
    draw = ImageDraw.Draw(image)
    cx, cy = width / 2, height / 2
    outer = min(width, height) * 0.40
    inner = min(width, height) * 0.10
    ring = max(1, round(min(width, height) / 40))
    draw.ellipse([(cx - outer, cy - outer), (cx + outer, cy + outer)], fill=(255, 182, 193), outline=(255, 105, 180), width=ring)
    draw.ellipse([(cx - inner, cy - inner), (cx + inner, cy + inner)], fill=(255, 105, 180))
    return encode_canonical(image, quality=quality)


def synthesize_brand_logo(text: str, width: int, height: int, *, quality: int = 90) -> bytes:
    image = Image.new("RGB", (max(width, 1), max(height, 1)), (255, 255, 255))
    draw = ImageDraw.Draw(image)
    size = max(8, round(height * 0.28))
    font = _font(size)
    while size > 8 and draw.textlength(text, font=font) > width * 0.9:
        size -= 2
        font = _font(size)
    _centered_text(draw, text, height / 2, width, font, (0, 0, 0))
    draw.line([(width * 0.1, height * 0.72), (width * 0.9, height * 0.72)], fill=(255, 64, 129), width=max(1, height // 30))
    return encode_canonical(image, quality=quality)
