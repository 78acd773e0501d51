"""
Core records for per-photo duplicate analysis.

PhotoRecord is what the caller hands in; AnalysisResult is the single,
immutable verdict produced for each photo in a run.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple


class Decision(Enum):
    """Per-photo verdict."""
    DUPLICATE = "duplicate"
    BURST_SHOT = "burst_shot"
    SIMILAR = "similar"
    UNIQUE = "unique"

    @classmethod
    def parse(cls, value: str) -> "Decision":
        """Map a raw string onto a Decision, raising ValueError if unknown."""
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class PhotoRecord:
    """A photo as supplied by the storage collaborator."""
    id: str                                  # Unique within the batch
    captured_at: float                       # Unix seconds
    coordinates: Optional[Coordinates] = None
    fingerprint: str = ""                    # Hex perceptual hash or opaque digest
    image_url: Optional[str] = None

    def seconds_from(self, other: "PhotoRecord") -> float:
        """Absolute capture-time difference to another photo."""
        return abs(self.captured_at - other.captured_at)

    def has_gps(self) -> bool:
        return self.coordinates is not None


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class QualityMetrics:
    """
    Four [0, 1] sub-scores used to rank photos inside a group.

    ``estimated`` is True when the scores come from metadata only and no
    image content was judged; those are never mixed up with
    vision-derived scores downstream.
    """
    sharpness: float
    composition: float
    lighting: float
    subject_clarity: float
    notes: str = ""
    estimated: bool = False

    @property
    def overall_quality(self) -> float:
        """Mean of the sub-scores, clamped to [0, 1]."""
        scores = (self.sharpness, self.composition, self.lighting, self.subject_clarity)
        return _clamp(sum(scores) / len(scores))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sharpness": self.sharpness,
            "composition": self.composition,
            "lighting": self.lighting,
            "subjectClarity": self.subject_clarity,
            "overallQuality": self.overall_quality,
            "notes": self.notes,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Verdict for one photo in one analysis run."""
    photo_id: str
    decision: Decision
    confidence: float
    reasoning: str
    visual_observations: str = ""
    technical_notes: str = ""
    related_photo_ids: Tuple[str, ...] = field(default_factory=tuple)
    patterns: Tuple[str, ...] = field(default_factory=tuple)
    quality_metrics: Optional[QualityMetrics] = None
    source: Literal["heuristic", "vision"] = "heuristic"
    degraded: bool = False

    def __post_init__(self):
        if self.decision is Decision.UNIQUE and self.related_photo_ids:
            raise ValueError(f"Unique result for {self.photo_id} cannot list related photos")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1], got {self.confidence}")

    def is_unique(self) -> bool:
        return self.decision is Decision.UNIQUE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase response shape."""
        result = {
            "photoId": self.photo_id,
            "decision": self.decision.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "visualObservations": self.visual_observations,
            "technicalNotes": self.technical_notes,
            "relatedPhotoIds": list(self.related_photo_ids),
            "patterns": list(self.patterns),
            "source": self.source,
            "degraded": self.degraded,
        }
        if self.quality_metrics is not None:
            result["qualityMetrics"] = self.quality_metrics.to_dict()
        return result
