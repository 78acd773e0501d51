"""Quality scoring used to pick the keeper inside a group."""

import math
from typing import Any, Dict, Mapping, Optional

from .model import PhotoRecord, QualityMetrics
from ..fingerprint.hash import parse_fingerprint

DEFAULT_QUALITY = 0.5
ESTIMATE_BASELINE = 0.6
GPS_BONUS = 0.05
FINGERPRINT_BONUS = 0.05

_ASSESSMENT_KEYS = {
    "sharpness": "sharpness",
    "composition": "composition",
    "lighting": "lighting",
    "subjectClarity": "subject_clarity",
}


def estimate_quality(photo: PhotoRecord) -> QualityMetrics:
    """
    Metadata-only quality estimate for when no image was judged.

    Starts from a neutral baseline and nudges it up for photos that carry
    GPS or a difference-hash fingerprint.
    """
    score = ESTIMATE_BASELINE
    if photo.has_gps():
        score += GPS_BONUS
    parsed = parse_fingerprint(photo.fingerprint)
    if parsed is not None:
        score += FINGERPRINT_BONUS

    score = min(1.0, score)
    return QualityMetrics(
        sharpness=score,
        composition=score,
        lighting=score,
        subject_clarity=score,
        notes="Estimated from metadata; image content was not analyzed",
        estimated=True,
    )


def overall_quality(metrics: Optional[QualityMetrics]) -> float:
    """
    Single ranking key in [0, 1].

    Absent metrics score 0.5 so every group member can be ordered.
    """
    if metrics is None:
        return DEFAULT_QUALITY
    score = metrics.overall_quality
    if math.isnan(score):
        return DEFAULT_QUALITY
    return max(0.0, min(1.0, score))


def quality_from_assessment(block: Mapping[str, Any]) -> QualityMetrics:
    """
    Build vision-derived metrics from a ``qualityAssessment`` block.

    Raises:
        ValueError: If the block is not a mapping or a sub-score is
            missing or not a number
    """
    if not isinstance(block, Mapping):
        raise ValueError(f"qualityAssessment must be an object, got {type(block).__name__}")

    scores: Dict[str, float] = {}
    for key, attr in _ASSESSMENT_KEYS.items():
        value = block.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"qualityAssessment.{key} must be a number, got {value!r}")
        if math.isnan(value):
            raise ValueError(f"qualityAssessment.{key} is NaN")
        scores[attr] = max(0.0, min(1.0, float(value)))

    notes = block.get("notes") or ""
    return QualityMetrics(notes=str(notes), estimated=False, **scores)
