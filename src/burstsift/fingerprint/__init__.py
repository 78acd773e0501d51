"""Perceptual fingerprint engine for job-site photos."""

from .hash import FingerprintError, compute_fingerprint, fingerprint_bytes, fingerprint_file, parse_fingerprint
from .distance import (
    FingerprintMismatchError,
    bit_width,
    fingerprint_similarity,
    hamming_distance,
    is_near_identical,
    similarity,
)
from .fetch import ImageFetcher

__all__ = [
    "FingerprintError",
    "FingerprintMismatchError",
    "ImageFetcher",
    "bit_width",
    "compute_fingerprint",
    "fingerprint_bytes",
    "fingerprint_file",
    "fingerprint_similarity",
    "hamming_distance",
    "is_near_identical",
    "parse_fingerprint",
    "similarity",
]
