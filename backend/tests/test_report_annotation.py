from __future__ import annotations

import base64
from io import BytesIO

import pytest
from pypdf import PdfReader

from app.services.report_annotation import AnnotationError, apply_overlay, decode_overlay_data_url
from app.services.report_encoder import Document, EncodingError, encode_document
from app.services.report_layout import DEFAULT_GEOMETRY, STYLES, PageCanvas


def _pdf(*texts: str) -> bytes:
    pages = []
    for text in texts:
        canvas = PageCanvas(DEFAULT_GEOMETRY)
        canvas.place_text("header.title", text, STYLES["title"])
        pages.append(canvas.finish())
    return encode_document(Document(pages=tuple(pages), title="t", author="a", producer="p"))


def _data_url(raw: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(raw).decode("ascii")


def test_decodes_png_data_url(make_image):
    png = make_image((40, 30), mode="RGBA")
    assert decode_overlay_data_url(_data_url(png)) == png


@pytest.mark.parametrize(
    "value",
    [
        "",
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk",
        "data:image/jpeg;base64,AAAA",
        "data:image/png;base64,@@not-base64@@",
        "data:image/png;base64,",
        "data:image/png;base64," + base64.b64encode(b"plain text, not an image").decode("ascii"),
    ],
)
def test_rejects_bad_overlays(value):
    with pytest.raises(AnnotationError):
        decode_overlay_data_url(value)


def test_rejects_non_png_payload(make_image):
    with pytest.raises(AnnotationError, match="PNG"):
        decode_overlay_data_url(_data_url(make_image(fmt="JPEG")))


def test_overlay_is_merged_onto_first_page_only(make_image):
    original = _pdf("Page one", "Page two")
    annotated = apply_overlay(original, make_image((120, 170), mode="RGBA"))

    before = PdfReader(BytesIO(original))
    after = PdfReader(BytesIO(annotated))
    assert len(after.pages) == 2
    assert annotated != original
    assert float(after.pages[0].mediabox.width) == pytest.approx(float(before.pages[0].mediabox.width))
    assert "Page one" in after.pages[0].extract_text()
    assert after.pages[1].extract_text() == before.pages[1].extract_text()
    xobjects = after.pages[0]["/Resources"]["/XObject"]
    assert len(xobjects) >= 1


def test_unreadable_stored_pdf_is_an_encoding_error(make_image):
    with pytest.raises(EncodingError):
        apply_overlay(b"%PDF-1.4 garbage", make_image())
