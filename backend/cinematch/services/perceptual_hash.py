"""
perceptual_hash.py

Image fingerprints for approximate poster/scene matching:
- 64-bit average hash over an 8x8 grayscale downsample (mean threshold)
- dominant colour from a 4096-bin RGB histogram, with its HSV transform
"""
import colorsys
import logging
from io import BytesIO
from typing import Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from cinematch.core.errors import InsufficientInput
from cinematch.models import ImageFingerprint

logger = logging.getLogger(__name__)

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE
# 64 bits * 1.5625 = 100, so distance maps linearly onto 0-100
DISTANCE_SCALE = 100.0 / HASH_BITS
MISMATCH_DISTANCE = 100

HASH_WEIGHT = 0.7
COLOR_WEIGHT = 0.3

HISTOGRAM_LEVELS = 16
COLOR_SAMPLE_SIZE = (150, 150)


def load_image(buffer: bytes) -> Image.Image:
    """Decode an image buffer into RGB. Raises InsufficientInput if undecodable."""
    if not buffer:
        raise InsufficientInput("Empty image buffer")
    try:
        img = Image.open(BytesIO(buffer))
        img.load()
        return img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise InsufficientInput(f"Could not decode image: {e}") from e


def average_hash(image: Image.Image) -> str:
    """Perceptual hash as a 64-char string of '0'/'1'."""
    small = image.resize((HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS).convert("L")
    pixels = np.asarray(small, dtype=np.float64).flatten()
    mean = pixels.mean()
    return "".join("1" if p >= mean else "0" for p in pixels)


def dominant_color(image: Image.Image) -> Tuple[int, int, int]:
    """Most populated bin of a 16x16x16 RGB histogram, reported as the bin centre."""
    sample = np.asarray(image.resize(COLOR_SAMPLE_SIZE), dtype=np.uint8).reshape(-1, 3)
    step = 256 // HISTOGRAM_LEVELS
    bins = (sample // step).astype(np.int64)
    flat = bins[:, 0] * HISTOGRAM_LEVELS * HISTOGRAM_LEVELS + bins[:, 1] * HISTOGRAM_LEVELS + bins[:, 2]
    counts = np.bincount(flat, minlength=HISTOGRAM_LEVELS ** 3)
    top = int(counts.argmax())
    r_bin, rest = divmod(top, HISTOGRAM_LEVELS * HISTOGRAM_LEVELS)
    g_bin, b_bin = divmod(rest, HISTOGRAM_LEVELS)
    half = step // 2
    return (r_bin * step + half, g_bin * step + half, b_bin * step + half)


def rgb_to_hsv(r: float, g: float, b: float) -> Tuple[float, float, float]:
    """RGB (0-255) to HSV with hue in degrees and saturation/value in percent."""
    h, s, v = colorsys.rgb_to_hsv(r / 255.0, g / 255.0, b / 255.0)
    return (h * 360.0, s * 100.0, v * 100.0)


def fingerprint_image(image: Image.Image) -> ImageFingerprint:
    rgb = dominant_color(image)
    return ImageFingerprint(hash=average_hash(image), rgb=rgb, hsv=rgb_to_hsv(*rgb))


def fingerprint(buffer: bytes) -> ImageFingerprint:
    """Fingerprint an encoded image buffer."""
    return fingerprint_image(load_image(buffer))


def hamming_distance(hash1: Optional[str], hash2: Optional[str]) -> int:
    """Differing positions; MISMATCH_DISTANCE when hashes are missing or differ in length."""
    if not hash1 or not hash2 or len(hash1) != len(hash2):
        return MISMATCH_DISTANCE
    return sum(1 for a, b in zip(hash1, hash2) if a != b)


def hash_similarity(hash1: Optional[str], hash2: Optional[str]) -> float:
    return max(0.0, 100.0 - hamming_distance(hash1, hash2) * DISTANCE_SCALE)


def color_similarity(fp1: Optional[ImageFingerprint], fp2: Optional[ImageFingerprint]) -> float:
    """Weighted HSV closeness on a 0-100 scale; hue wraps around the colour wheel."""
    if fp1 is None or fp2 is None:
        return 0.0
    h1, s1, v1 = fp1.hsv
    h2, s2, v2 = fp2.hsv
    h_diff = abs(h1 - h2)
    h_sim = 1 - min(h_diff, 360 - h_diff) / 180
    s_sim = 1 - abs(s1 - s2) / 100
    v_sim = 1 - abs(v1 - v2) / 100
    return (h_sim * 0.5 + s_sim * 0.3 + v_sim * 0.2) * 100


def combined_score(hash_sim: float, color_sim: float) -> float:
    return hash_sim * HASH_WEIGHT + color_sim * COLOR_WEIGHT
