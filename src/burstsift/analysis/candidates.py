"""Temporal candidate selection for a target photo."""

from typing import List, Sequence

from ..logging import get_logger
from .model import AnalysisResult, Decision, PhotoRecord

logger = get_logger(__name__)

NO_NEIGHBORS_REASONING = "no temporal neighbors"


def select_candidates(
    target: PhotoRecord,
    batch: Sequence[PhotoRecord],
    window_seconds: float = 30.0,
    max_candidates: int = 4,
) -> List[PhotoRecord]:
    """
    Pick the photos worth comparing against ``target``.

    Args:
        target: Photo under analysis
        batch: Full batch, in input order (the target may be included)
        window_seconds: Strict upper bound on capture-time difference
        max_candidates: Maximum number of candidates returned

    Returns:
        Up to ``max_candidates`` photos, closest in time first. Equal
        offsets keep their batch order.
    """
    neighbours = [
        photo for photo in batch
        if photo.id != target.id and target.seconds_from(photo) < window_seconds
    ]
    neighbours.sort(key=target.seconds_from)
    selected = neighbours[:max_candidates]

    logger.debug(f"Selected {len(selected)} candidates for {target.id} from {len(neighbours)} neighbours")
    return selected


def no_neighbors_result(target: PhotoRecord) -> AnalysisResult:
    """Verdict for a photo with nothing nearby in time."""
    return AnalysisResult(
        photo_id=target.id,
        decision=Decision.UNIQUE,
        confidence=0.9,
        reasoning=NO_NEIGHBORS_REASONING,
        visual_observations="No other photo captured close enough in time to compare",
        technical_notes="candidate_selection: none",
    )
