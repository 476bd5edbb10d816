"""Unit tests for the Pillow image processor."""
import io

import pytest
from PIL import Image

from shutterlink.errors import ValidationFailed
from shutterlink.infrastructure.services import PillowImageProcessor
from tests.conftest import make_image_bytes


@pytest.fixture
def processor():
    return PillowImageProcessor()


def test_small_jpeg_stored_unchanged(processor):
    data = make_image_bytes(size=(800, 600))

    result = processor.process(data, "image/jpeg")

    assert result.stored_variant == data
    assert (result.width, result.height) == (800, 600)
    assert result.mime_type == "image/jpeg"


def test_png_reencoded_as_jpeg(processor):
    data = make_image_bytes(fmt="PNG")

    result = processor.process(data, "image/png")

    with Image.open(io.BytesIO(result.stored_variant)) as img:
        assert img.format == "JPEG"


def test_thumbnail_fits_bounds(processor):
    result = processor.process(make_image_bytes(size=(1200, 600)), "image/jpeg")

    with Image.open(io.BytesIO(result.thumbnail_variant)) as thumb:
        assert thumb.size == (300, 150)


def test_small_image_thumbnail_not_enlarged(processor):
    result = processor.process(make_image_bytes(size=(64, 48)), "image/jpeg")

    with Image.open(io.BytesIO(result.thumbnail_variant)) as thumb:
        assert thumb.size == (64, 48)


@pytest.mark.parametrize("data, mime", [
    (b"", "image/jpeg"),
    (b"definitely not an image", "image/jpeg"),
    (b"definitely not an image", None),
])
def test_invalid_input_rejected(processor, data, mime):
    with pytest.raises(ValidationFailed):
        processor.process(data, mime)


def test_disallowed_mime_rejected(processor):
    with pytest.raises(ValidationFailed):
        processor.process(make_image_bytes(), "application/pdf")


def test_oversized_input_rejected():
    processor = PillowImageProcessor(max_size=100)

    with pytest.raises(ValidationFailed):
        processor.process(make_image_bytes(), "image/jpeg")
