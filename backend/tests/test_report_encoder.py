from __future__ import annotations

from io import BytesIO

import pytest
from pypdf import PdfReader

from app.services.placeholder import synthesize_placeholder
from app.services.report_encoder import Document, EncodingError, encode_document
from app.services.report_layout import (
    DEFAULT_GEOMETRY,
    STYLES,
    Box,
    ComposedPage,
    ImagePlacement,
    PageCanvas,
)


def _page(text: str = "Hello report") -> ComposedPage:
    canvas = PageCanvas(DEFAULT_GEOMETRY)
    canvas.draw_rect("subject.panel", fill_color="#FFF0F5", radius=4)
    canvas.place_text("header.title", text, STYLES["title"])
    canvas.draw_rule("header.rule")
    size = DEFAULT_GEOMETRY.pixel_size("left.image.0")
    canvas.place_image("left.image.0", synthesize_placeholder("leftTop", *size), size)
    return canvas.finish()


def _document(*pages: ComposedPage) -> Document:
    return Document(pages=pages, title="Screening", author="Tests", producer="Test Producer")


def test_encodes_single_page_with_metadata():
    pdf = encode_document(_document(_page()))
    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == 1
    assert "Hello report" in reader.pages[0].extract_text()
    assert reader.metadata.title == "Screening"
    assert reader.metadata.author == "Tests"
    page = reader.pages[0]
    assert float(page.mediabox.width) == pytest.approx(DEFAULT_GEOMETRY.page_width)
    assert float(page.mediabox.height) == pytest.approx(DEFAULT_GEOMETRY.page_height)


def test_identical_input_gives_identical_bytes():
    assert encode_document(_document(_page())) == encode_document(_document(_page()))


def test_multiple_pages_are_kept_in_order():
    pdf = encode_document(_document(_page("First page"), _page("Second page")))
    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == 2
    assert "Second page" in reader.pages[1].extract_text()


def test_image_pixel_size_mismatch_is_rejected():
    data = synthesize_placeholder("leftTop", 50, 50)
    bad = ImagePlacement(name="left.image.0", data=data, box=Box(30, 30, 100, 100), pixel_width=60, pixel_height=60)
    page = ComposedPage(width=DEFAULT_GEOMETRY.page_width, height=DEFAULT_GEOMETRY.page_height, operations=(bad,))
    with pytest.raises(EncodingError, match="50x50px"):
        encode_document(_document(page))


def test_undecodable_image_is_an_encoding_error():
    bad = ImagePlacement(name="x", data=b"not a jpeg", box=Box(30, 30, 10, 10), pixel_width=20, pixel_height=20)
    page = ComposedPage(width=DEFAULT_GEOMETRY.page_width, height=DEFAULT_GEOMETRY.page_height, operations=(bad,))
    with pytest.raises(EncodingError):
        encode_document(_document(page))


def test_mixed_page_sizes_are_rejected():
    other = ComposedPage(width=300, height=300, operations=())
    with pytest.raises(EncodingError, match="Page 2"):
        encode_document(_document(_page(), other))


def test_empty_document_is_rejected():
    with pytest.raises(EncodingError):
        encode_document(_document())
