"""Greedy grouping of per-photo verdicts into duplicate groups."""

from collections import Counter
from typing import Any, Dict, List, Sequence

from ..analysis.model import AnalysisResult, Decision
from ..analysis.quality import overall_quality
from ..logging import get_logger
from .model import DuplicateGroup, GroupType, group_type_for

logger = get_logger(__name__)

DUPLICATE_RECOMMENDATION = "Keep the first photo and delete the rest - likely accidental duplicates"
SIMILAR_RECOMMENDATION = "Review photos for best composition - may want to keep multiple angles"


def build_groups(results: Sequence[AnalysisResult]) -> List[DuplicateGroup]:
    """
    Turn per-photo verdicts into disjoint groups.

    Single pass in input order: each non-unique result with related
    photos claims itself plus its related photos that no earlier group
    took. A photo is never reconsidered once consumed, so the output
    depends on the order of ``results``; pass them in batch order.

    Args:
        results: One AnalysisResult per photo, in batch order

    Returns:
        Groups of two or more photos, ids ``group_1``, ``group_2``, ...
    """
    position = {result.photo_id: index for index, result in enumerate(results)}
    scores = {result.photo_id: overall_quality(result.quality_metrics) for result in results}

    processed = set()
    groups: List[DuplicateGroup] = []

    for result in results:
        if result.photo_id in processed:
            continue
        if result.decision is Decision.UNIQUE or not result.related_photo_ids:
            continue

        members = []
        for photo_id in (result.photo_id,) + result.related_photo_ids:
            if photo_id not in processed and photo_id not in members:
                members.append(photo_id)

        if len(members) < 2:
            continue

        group_type = group_type_for(result.decision)
        best_photo_id = None
        ranking: List[str] = []
        if group_type is GroupType.BURST_SEQUENCE:
            ranking = _rank_by_quality(members, scores, position)
            best_photo_id = ranking[0]

        group = DuplicateGroup(
            id=f"group_{len(groups) + 1}",
            type=group_type,
            photo_ids=tuple(members),
            reasoning=result.reasoning,
            recommendation=_recommend(group_type, best_photo_id, scores),
            confidence=result.confidence,
            best_photo_id=best_photo_id,
            quality_ranking=tuple(ranking),
        )
        groups.append(group)
        processed.update(members)

        logger.info(f"Created {group_type.value} group {group.id} with {len(members)} photos")

    return groups


def _rank_by_quality(members: List[str], scores: Dict[str, float], position: Dict[str, int]) -> List[str]:
    # Ties fall back to batch order; ids missing from the batch sort last.
    return sorted(
        members,
        key=lambda photo_id: (-scores.get(photo_id, overall_quality(None)), position.get(photo_id, len(position))),
    )


def _recommend(group_type: GroupType, best_photo_id, scores: Dict[str, float]) -> str:
    if group_type is GroupType.EXACT_DUPLICATE:
        return DUPLICATE_RECOMMENDATION
    if group_type is GroupType.BURST_SEQUENCE:
        score = scores.get(best_photo_id, overall_quality(None))
        return (
            f"Keep {best_photo_id} (quality {score:.2f}) from the burst sequence "
            f"and archive the rest"
        )
    return SIMILAR_RECOMMENDATION


def summarize(results: Sequence[AnalysisResult], groups: Sequence[DuplicateGroup]) -> Dict[str, Any]:
    """Counts for reporting: decisions, groups by type and suggested archive size."""
    decisions = Counter(result.decision for result in results)
    group_types = Counter(group.type.value for group in groups)

    # One keeper per burst/duplicate group; similar groups are left for review.
    archivable = sum(
        len(group.photo_ids) - 1 for group in groups
        if group.type in (GroupType.EXACT_DUPLICATE, GroupType.BURST_SEQUENCE)
    )

    return {
        "duplicatesFound": decisions[Decision.DUPLICATE],
        "burstShotsFound": decisions[Decision.BURST_SHOT],
        "similarFound": decisions[Decision.SIMILAR],
        "uniquePhotos": decisions[Decision.UNIQUE],
        "groupsByType": {group_type.value: group_types[group_type.value] for group_type in GroupType},
        "photosInGroups": sum(len(group.photo_ids) for group in groups),
        "archiveCandidates": archivable,
    }
