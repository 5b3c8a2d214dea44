"""
Upload validation and normalization for scene-search images.
"""
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from cinematch.core.errors import InsufficientInput

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_DIMENSION = 1024
JPEG_QUALITY = 85


def validate_image(content_type: Optional[str], size: int) -> None:
    """Raise InsufficientInput for unsupported formats, empty or oversized uploads."""
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InsufficientInput("Invalid image format. Allowed: JPEG, PNG, WebP")
    if size <= 0:
        raise InsufficientInput("No image file provided")
    if size > MAX_IMAGE_BYTES:
        raise InsufficientInput("Image too large. Maximum size: 10MB")


def optimize_image(buffer: bytes) -> bytes:
    """Fit inside 1024x1024 (never enlarging) and re-encode as JPEG q85."""
    try:
        img = Image.open(BytesIO(buffer))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InsufficientInput(f"Image optimization failed: {e}") from e
    img = img.convert("RGB")
    img.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.Resampling.LANCZOS)
    out = BytesIO()
    img.save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()
