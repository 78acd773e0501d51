"""
Metadata-only classification using deterministic rules.

This module decides duplicate / burst / similar / unique from capture
time, GPS and fingerprint similarity alone. It is the path taken whenever
the external vision service is unavailable, slow, rate limited or returns
something unusable, so it must never touch the network.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..config import Settings
from ..fingerprint.distance import fingerprint_similarity, is_near_identical
from ..logging import get_logger
from .model import AnalysisResult, Coordinates, Decision, PhotoRecord
from .quality import estimate_quality

logger = get_logger(__name__)


def coordinates_match(a: Optional[Coordinates], b: Optional[Coordinates], epsilon: float) -> bool:
    """True when both points exist and agree within ``epsilon`` degrees on each axis."""
    if a is None or b is None:
        return False
    return abs(a.latitude - b.latitude) <= epsilon and abs(a.longitude - b.longitude) <= epsilon


def classify_heuristically(
    target: PhotoRecord,
    candidates: Sequence[PhotoRecord],
    settings: Optional[Settings] = None,
    note: Optional[str] = None,
) -> AnalysisResult:
    """
    Classify ``target`` against its temporal candidates.

    Rules are evaluated in order and the first match wins. Burst is
    checked before duplicate because at short timescales both can hold.

    1. burst_shot: any candidate within the burst window
    2. duplicate: a candidate at the same GPS point within the duplicate window
    3. similar: two or more candidates within the similar window
    4. unique

    Args:
        target: Photo under analysis
        candidates: Output of the candidate selector, closest first
        settings: Thresholds; defaults are used when omitted
        note: Extra technical note, e.g. why the vision path fell back

    Returns:
        AnalysisResult with ``source="heuristic"``
    """
    settings = settings or Settings()

    burst = [c for c in candidates if target.seconds_from(c) < settings.burst_window_seconds]
    same_spot = [
        c for c in candidates
        if target.seconds_from(c) < settings.duplicate_window_seconds
        and coordinates_match(target.coordinates, c.coordinates, settings.gps_epsilon)
    ]
    nearby = [c for c in candidates if target.seconds_from(c) < settings.similar_window_seconds]

    patterns: List[str] = []
    if burst:
        spread = max(target.seconds_from(c) for c in burst)
        decision = Decision.BURST_SHOT
        confidence = 0.8
        related = burst
        reasoning = f"Part of rapid sequence - {len(burst) + 1} photos within {spread:g} seconds"
        observations = "Temporal clustering suggests burst mode or repeated attempts at the same shot"
        patterns += ["temporal_clustering", "rapid_sequence"]
    elif same_spot:
        decision = Decision.DUPLICATE
        confidence = 0.9
        related = same_spot
        reasoning = "Photos at identical GPS coordinates within a short time frame"
        observations = "Same location plus temporal proximity strongly suggests duplicate shots"
        patterns += ["same_location", "temporal_proximity"]
    elif len(nearby) >= 2:
        decision = Decision.SIMILAR
        confidence = 0.6
        related = nearby[:settings.similar_max_related]
        reasoning = f"{len(nearby)} photos taken within {settings.similar_window_seconds:g} seconds"
        observations = "Close timing suggests the same subject from a similar viewpoint"
        patterns += ["temporal_proximity"]
    else:
        decision = Decision.UNIQUE
        confidence = 0.8
        related = []
        reasoning = "Single photo without clear clustering patterns"
        observations = "Metadata suggests a unique shot"

    notes = [_describe(target)]
    for candidate in related:
        score = fingerprint_similarity(target.fingerprint, candidate.fingerprint)
        if score is None:
            continue
        notes.append(f"Fingerprint similarity to {candidate.id}: {score:.2f}")
        if is_near_identical(score, settings.similarity_threshold) and "near_identical_fingerprint" not in patterns:
            patterns.append("near_identical_fingerprint")
    if note:
        notes.append(note)

    quality = None
    if decision in (Decision.DUPLICATE, Decision.BURST_SHOT):
        quality = estimate_quality(target)

    result = AnalysisResult(
        photo_id=target.id,
        decision=decision,
        confidence=confidence,
        reasoning=reasoning,
        visual_observations=observations,
        technical_notes="; ".join(notes),
        related_photo_ids=tuple(c.id for c in related),
        patterns=tuple(patterns),
        quality_metrics=quality,
        source="heuristic",
        degraded=note is not None,
    )

    logger.debug(f"Heuristic classification for {target.id}: {decision.value} ({confidence:.2f})")
    return result


def _describe(photo: PhotoRecord) -> str:
    captured = datetime.fromtimestamp(photo.captured_at, tz=timezone.utc).isoformat()
    if photo.coordinates is not None:
        gps = f"{photo.coordinates.latitude:.6f}, {photo.coordinates.longitude:.6f}"
    else:
        gps = "None"
    return f"Hash: {photo.fingerprint or 'None'}, Captured: {captured}, GPS: {gps}"
