"""Image processing (stored variant and thumbnail)."""
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from ...config import (
    ALLOWED_IMAGE_TYPES, COMPRESSION_QUALITY, MAX_PHOTO_SIZE,
    THUMBNAIL_QUALITY, THUMBNAIL_SIZE,
)
from ...errors import ValidationFailed

# Inputs above this size are re-encoded even when already JPEG
RECOMPRESS_THRESHOLD = MAX_PHOTO_SIZE // 2


@dataclass(frozen=True)
class ProcessedImage:
    stored_variant: bytes
    thumbnail_variant: bytes
    width: int
    height: int
    mime_type: str


def _to_rgb(img: Image.Image) -> Image.Image:
    # JPEG has no transparency support
    if img.mode in ("RGBA", "P", "LA", "L"):
        return img.convert("RGB")
    return img


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    output = BytesIO()
    _to_rgb(img).save(output, "JPEG", quality=quality)
    return output.getvalue()


class PillowImageProcessor:
    """Turns uploaded bytes into a stored variant plus a thumbnail."""

    def __init__(self, thumbnail_size: tuple[int, int] = THUMBNAIL_SIZE,
                 max_size: int = MAX_PHOTO_SIZE):
        self.thumbnail_size = thumbnail_size
        self.max_size = max_size

    def process(self, data: bytes, mime_hint: str | None = None) -> ProcessedImage:
        """Process raw upload bytes.

        Non-JPEG input, and JPEG input over half the size limit, is
        re-encoded as JPEG. The thumbnail fits inside ``thumbnail_size``
        and is never enlarged.

        Args:
            data: Raw image bytes
            mime_hint: Declared content type, if any

        Returns:
            ProcessedImage with dimensions of the source image

        Raises:
            ValidationFailed: Empty, oversized, or undecodable input
        """
        if not data:
            raise ValidationFailed("Image is empty")
        if len(data) > self.max_size:
            raise ValidationFailed("Image exceeds the maximum upload size")
        if mime_hint and mime_hint not in ALLOWED_IMAGE_TYPES:
            raise ValidationFailed("Only image files are allowed")

        try:
            with Image.open(BytesIO(data)) as img:
                # Apply EXIF orientation to fix rotated images from cameras/phones
                img = ImageOps.exif_transpose(img)
                width, height = img.size
                is_jpeg = (mime_hint or Image.MIME.get(img.format or "", "")) == "image/jpeg"

                if is_jpeg and len(data) <= RECOMPRESS_THRESHOLD:
                    stored = data
                else:
                    stored = _encode_jpeg(img, COMPRESSION_QUALITY)

                thumb = img.copy()
                thumb.thumbnail(self.thumbnail_size, Image.Resampling.LANCZOS)
                thumbnail = _encode_jpeg(thumb, THUMBNAIL_QUALITY)
        except (UnidentifiedImageError, OSError) as exc:
            raise ValidationFailed("File is not a valid image") from exc

        return ProcessedImage(
            stored_variant=stored,
            thumbnail_variant=thumbnail,
            width=width,
            height=height,
            mime_type="image/jpeg",
        )
