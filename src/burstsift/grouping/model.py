"""Duplicate group records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..analysis.model import Decision


class GroupType(Enum):
    EXACT_DUPLICATE = "exact_duplicate"
    BURST_SEQUENCE = "burst_sequence"
    SIMILAR_COMPOSITION = "similar_composition"


_DECISION_TO_GROUP = {
    Decision.DUPLICATE: GroupType.EXACT_DUPLICATE,
    Decision.BURST_SHOT: GroupType.BURST_SEQUENCE,
    Decision.SIMILAR: GroupType.SIMILAR_COMPOSITION,
}


def group_type_for(decision: Decision) -> GroupType:
    """Map a per-photo decision to its group type; unique photos have none."""
    try:
        return _DECISION_TO_GROUP[decision]
    except KeyError:
        raise ValueError(f"Decision {decision.value!r} does not form a group") from None


@dataclass(frozen=True)
class DuplicateGroup:
    """Related photos with a keep/archive recommendation."""
    id: str
    type: GroupType
    photo_ids: Tuple[str, ...]
    reasoning: str
    recommendation: str
    confidence: float
    best_photo_id: Optional[str] = None                          # burst_sequence only
    quality_ranking: Tuple[str, ...] = field(default_factory=tuple)  # burst_sequence only, best first

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "type": self.type.value,
            "photoIds": list(self.photo_ids),
            "reasoning": self.reasoning,
            "recommendation": self.recommendation,
            "confidence": self.confidence,
        }
        if self.type is GroupType.BURST_SEQUENCE:
            result["bestPhotoId"] = self.best_photo_id
            result["qualityRanking"] = list(self.quality_ranking)
        return result
