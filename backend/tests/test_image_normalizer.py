from __future__ import annotations

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from app.services.image_normalizer import DecodeError, normalize_image


def _encode(img: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buf = BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def _decode(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


def test_output_is_canonical_jpeg_at_exact_size(make_image):
    out = _decode(normalize_image(make_image((300, 120)), 90, 70))
    assert out.format == "JPEG"
    assert out.mode == "RGB"
    assert out.size == (90, 70)


def test_wide_image_is_center_cropped_not_letterboxed():
    arr = np.zeros((100, 210, 3), dtype=np.uint8)
    arr[:, :70] = (255, 0, 0)
    arr[:, 70:140] = (0, 255, 0)
    arr[:, 140:] = (0, 0, 255)
    out = _decode(normalize_image(_encode(Image.fromarray(arr)), 50, 50))

    r, g, b = out.getpixel((25, 25))
    assert g > 200 and r < 60 and b < 60
    # Top edge would be white if the image had been padded.
    r, g, b = out.getpixel((25, 1))
    assert g > 200 and r < 60


def test_transparent_pixels_flatten_to_white():
    arr = np.zeros((40, 40, 4), dtype=np.uint8)
    out = _decode(normalize_image(_encode(Image.fromarray(arr)), 20, 20))
    assert min(out.getpixel((10, 10))) >= 245


def test_exif_orientation_is_applied():
    arr = np.zeros((20, 40, 3), dtype=np.uint8)
    arr[:, :20] = (255, 0, 0)
    arr[:, 20:] = (0, 0, 255)
    img = Image.fromarray(arr)
    exif = img.getexif()
    exif[0x0112] = 6
    raw = _encode(img, "JPEG", quality=95, exif=exif.tobytes())

    out = _decode(normalize_image(raw, 20, 40))
    top = out.getpixel((10, 3))
    bottom = out.getpixel((10, 36))
    assert top[0] > 180 and top[2] < 80
    assert bottom[2] > 180 and bottom[0] < 80


@pytest.mark.parametrize("raw", [b"", b"definitely not an image", b"\x89PNG\r\n\x1a\n\x00\x00broken"])
def test_undecodable_input_raises(raw):
    with pytest.raises(DecodeError):
        normalize_image(raw, 10, 10)


def test_invalid_target_size_raises(make_image):
    with pytest.raises(DecodeError):
        normalize_image(make_image(), 0, 10)
