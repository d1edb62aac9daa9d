from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

CANONICAL_FORMAT = "JPEG"
CANONICAL_MODE = "RGB"


class DecodeError(Exception):
    """Raw bytes could not be decoded into a raster image."""


def _flatten(image: Image.Image) -> Image.Image:
    if image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(background, rgba).convert(CANONICAL_MODE)
    return image.convert(CANONICAL_MODE)


def encode_canonical(image: Image.Image, *, quality: int = 90) -> bytes:
    buffer = BytesIO()
    image.convert(CANONICAL_MODE).save(buffer, format=CANONICAL_FORMAT, quality=quality)
    return buffer.getvalue()


def normalize_image(raw: bytes, width: int, height: int, *, quality: int = 90) -> bytes:
    """Decode, center-crop to fill ``width`` x ``height`` and re-encode as canonical JPEG."""
    if width <= 0 or height <= 0:
        raise DecodeError(f"Invalid target size {width}x{height}")
    if not raw:
        raise DecodeError("Empty image payload")

    try:
        with Image.open(BytesIO(raw)) as source:
            source.load()
            oriented = ImageOps.exif_transpose(source)
            flat = _flatten(oriented)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Unable to decode image: {exc.__class__.__name__}") from exc

    fitted = ImageOps.fit(
        flat,
        (width, height),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )
    return encode_canonical(fitted, quality=quality)
