"""
Per-photo duplicate analysis.

Candidates are picked by capture time, then classified by the external
vision service when one is configured, with deterministic heuristics as
the fallback path.
"""

from .model import AnalysisResult, Coordinates, Decision, PhotoRecord, QualityMetrics
from .candidates import no_neighbors_result, select_candidates
from .heuristics import classify_heuristically, coordinates_match
from .quality import estimate_quality, overall_quality, quality_from_assessment
from .ratelimit import RateLimiter
from .vision import (
    HttpVisionClient,
    MalformedVisionResponse,
    VisionClassifier,
    VisionClassifierError,
    create_vision_classifier,
    parse_vision_response,
)

__all__ = [
    "AnalysisResult",
    "Coordinates",
    "Decision",
    "HttpVisionClient",
    "MalformedVisionResponse",
    "PhotoRecord",
    "QualityMetrics",
    "RateLimiter",
    "VisionClassifier",
    "VisionClassifierError",
    "classify_heuristically",
    "coordinates_match",
    "create_vision_classifier",
    "estimate_quality",
    "no_neighbors_result",
    "overall_quality",
    "parse_vision_response",
    "quality_from_assessment",
    "select_candidates",
]
