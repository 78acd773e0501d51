"""Distance metrics for fingerprint comparison."""

from typing import Optional

import imagehash

from .hash import parse_fingerprint


class FingerprintMismatchError(ValueError):
    """Raised when comparing fingerprints of different widths."""


def bit_width(fingerprint: imagehash.ImageHash) -> int:
    """Number of bits in a fingerprint."""
    return int(fingerprint.hash.size)


def hamming_distance(a: imagehash.ImageHash, b: imagehash.ImageHash) -> int:
    """
    Calculate Hamming distance between two fingerprints.

    Args:
        a: First fingerprint
        b: Second fingerprint

    Returns:
        Number of differing bits

    Raises:
        FingerprintMismatchError: If the fingerprints have different shapes
    """
    if a.hash.shape != b.hash.shape:
        raise FingerprintMismatchError(
            f"Cannot compare fingerprints of shape {a.hash.shape} and {b.hash.shape}"
        )
    return int(a - b)


def similarity(a: imagehash.ImageHash, b: imagehash.ImageHash) -> float:
    """Fraction of agreeing bits, 1 - distance / width."""
    return 1.0 - hamming_distance(a, b) / bit_width(a)


def fingerprint_similarity(value_a: Optional[str], value_b: Optional[str]) -> Optional[float]:
    """
    Similarity between two hex fingerprints, or None if they are not comparable.

    Opaque values and mismatched widths are not errors here: the caller
    simply has no perceptual signal for the pair.
    """
    a = parse_fingerprint(value_a)
    b = parse_fingerprint(value_b)
    if a is None or b is None or a.hash.shape != b.hash.shape:
        return None
    return similarity(a, b)


def is_near_identical(score: Optional[float], threshold: float = 0.88) -> bool:
    return score is not None and score >= threshold
