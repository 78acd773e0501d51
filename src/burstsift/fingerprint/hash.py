"""Difference-hash fingerprints for photo deduplication."""

import io
from pathlib import Path
from typing import Optional, Union

import imagehash
from PIL import Image, UnidentifiedImageError

from ..logging import get_logger

logger = get_logger(__name__)

# 9x8 grid -> 8 comparisons per row x 8 rows = 64 bits
DEFAULT_HASH_SIZE = 8


class FingerprintError(Exception):
    """Raised when an image cannot be decoded or fingerprinted."""


def compute_fingerprint(image: Image.Image, hash_size: int = DEFAULT_HASH_SIZE) -> imagehash.ImageHash:
    """
    Compute a difference hash for an already-decoded image.

    The image is reduced to grayscale, resampled to a (hash_size + 1) x
    hash_size grid and each row contributes one bit per adjacent pixel
    pair, giving hash_size * hash_size bits.

    Args:
        image: Decoded PIL image
        hash_size: Rows in the grid (8 gives a 64-bit fingerprint)

    Returns:
        ImageHash holding the bit matrix

    Raises:
        FingerprintError: If the pixel data cannot be read
    """
    try:
        if image.mode not in ('RGB', 'L'):
            image = image.convert('RGB')
        return imagehash.dhash(image, hash_size=hash_size)
    except (OSError, ValueError) as exc:
        raise FingerprintError(f"Failed to fingerprint image: {exc}") from exc


def fingerprint_bytes(data: bytes, hash_size: int = DEFAULT_HASH_SIZE) -> imagehash.ImageHash:
    """Decode encoded image bytes and fingerprint them."""
    if not data:
        raise FingerprintError("Empty image payload")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return compute_fingerprint(img, hash_size=hash_size)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise FingerprintError(f"Failed to decode image payload: {exc}") from exc


def fingerprint_file(path: Union[str, Path], hash_size: int = DEFAULT_HASH_SIZE) -> imagehash.ImageHash:
    """
    Load an image from disk and fingerprint it.

    Raises:
        FingerprintError: If the file is missing or not a decodable image
    """
    image_path = Path(path)
    try:
        with Image.open(image_path) as img:
            img.load()
            fingerprint = compute_fingerprint(img, hash_size=hash_size)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise FingerprintError(f"Failed to fingerprint {image_path}: {exc}") from exc

    logger.debug(f"Computed fingerprint for {image_path}: {fingerprint}")
    return fingerprint


def parse_fingerprint(value: Optional[str], hash_size: int = DEFAULT_HASH_SIZE) -> Optional[imagehash.ImageHash]:
    """
    Read a hex difference hash of exactly hash_size * hash_size bits.

    Anything else (empty, non-hex, or any other width such as a SHA-256
    content digest) is an opaque value, not a comparable fingerprint, and
    yields None.
    """
    if not value:
        return None
    text = value.strip().lower()
    try:
        int(text, 16)
    except ValueError:
        return None

    if len(text) * 4 != hash_size * hash_size:
        return None

    return imagehash.hex_to_hash(text)
