"""
Batch analysis pipeline.

A request is validated up front, every photo is classified (vision
service with heuristic fallback, in throttled sub-batches), the results
are put back into batch order and only then handed to the group builder.
Per-photo failures become degraded results; only a malformed request or
cancellation reaches the caller.
"""

import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Set, Tuple

from .analysis.candidates import no_neighbors_result, select_candidates
from .analysis.heuristics import classify_heuristically
from .analysis.model import AnalysisResult, Coordinates, PhotoRecord
from .analysis.vision import VisionClassifier
from .config import Settings
from .fingerprint.fetch import ImageFetcher
from .fingerprint.hash import FingerprintError
from .grouping.cluster import build_groups, summarize
from .grouping.model import DuplicateGroup
from .logging import get_logger

logger = get_logger(__name__)

# Extra time allowed past the service timeout before a call is abandoned
TIMEOUT_GRACE_SECONDS = 2.0


class InvalidRequestError(ValueError):
    """Raised when a request cannot be analyzed as given."""


class AnalysisCancelled(Exception):
    """Raised when a run is cancelled before its results are complete."""


@dataclass(frozen=True)
class AnalysisReport:
    """Complete outcome of one batch analysis."""
    results: Tuple[AnalysisResult, ...]
    groups: Tuple[DuplicateGroup, ...]
    analysis_time_ms: int
    analysis_method: Literal["heuristic", "vision", "hybrid"]
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def degraded_photo_ids(self) -> List[str]:
        return [result.photo_id for result in self.results if result.degraded]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the response shape for JSON serialization."""
        return {
            "analysisResults": [result.to_dict() for result in self.results],
            "duplicateGroups": [group.to_dict() for group in self.groups],
            "metadata": {
                "analysisTimeMs": self.analysis_time_ms,
                "photosAnalyzed": len(self.results),
                "analysisMethod": self.analysis_method,
                "degradedPhotos": self.degraded_photo_ids,
                "summary": self.summary,
            },
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_coordinates(raw: Any, index: int) -> Optional[Coordinates]:
    if raw is None:
        return None
    if isinstance(raw, list):
        if not raw:
            return None
        raw = raw[0]
    if not isinstance(raw, Mapping):
        raise InvalidRequestError(f"photos[{index}].coordinates must be an object or list of objects")

    latitude = raw.get("latitude")
    longitude = raw.get("longitude")
    if not _is_number(latitude) or not _is_number(longitude):
        raise InvalidRequestError(f"photos[{index}].coordinates needs numeric latitude and longitude")
    if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
        raise InvalidRequestError(f"photos[{index}].coordinates out of range: {latitude}, {longitude}")
    return Coordinates(latitude=float(latitude), longitude=float(longitude))


def parse_photo(entry: Any, index: int, image_url: Optional[str] = None) -> PhotoRecord:
    """Build a PhotoRecord from one request entry."""
    if not isinstance(entry, Mapping):
        raise InvalidRequestError(f"photos[{index}] must be an object")

    photo_id = entry.get("id")
    if isinstance(photo_id, int) and not isinstance(photo_id, bool):
        photo_id = str(photo_id)
    if not isinstance(photo_id, str) or not photo_id.strip():
        raise InvalidRequestError(f"photos[{index}] is missing an id")

    captured_at = entry.get("capturedAt", entry.get("captured_at"))
    if not _is_number(captured_at):
        raise InvalidRequestError(f"photos[{index}] ({photo_id}) needs a numeric capturedAt")

    fingerprint = entry.get("fingerprint", entry.get("hash")) or ""
    if not isinstance(fingerprint, str):
        raise InvalidRequestError(f"photos[{index}] ({photo_id}) fingerprint must be a string")

    url = image_url if image_url is not None else entry.get("imageUrl", entry.get("image_url"))
    if url is not None and not isinstance(url, str):
        raise InvalidRequestError(f"photos[{index}] ({photo_id}) imageUrl must be a string")

    return PhotoRecord(
        id=photo_id,
        captured_at=float(captured_at),
        coordinates=_parse_coordinates(entry.get("coordinates"), index),
        fingerprint=fingerprint,
        image_url=url or None,
    )


def parse_request(payload: Any, settings: Optional[Settings] = None) -> List[PhotoRecord]:
    """
    Validate a request and return its photos in batch order.

    Accepts ``{"photos": [...]}`` or the parallel-array form
    ``{"photoUrls": [...], "photoMetadata": [...]}``.

    Raises:
        InvalidRequestError: On an empty or oversized batch, mismatched
            arrays, duplicate ids or malformed entries
    """
    settings = settings or Settings()
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object")

    if "photos" in payload:
        entries = payload["photos"]
        if not isinstance(entries, list):
            raise InvalidRequestError("photos must be a list")
        photos = [parse_photo(entry, i) for i, entry in enumerate(entries)]
    elif "photoMetadata" in payload or "photoUrls" in payload:
        urls = payload.get("photoUrls")
        metadata = payload.get("photoMetadata")
        if not isinstance(urls, list) or not isinstance(metadata, list):
            raise InvalidRequestError("photoUrls and photoMetadata must both be lists")
        if len(urls) != len(metadata):
            raise InvalidRequestError(
                f"photoUrls and photoMetadata must have the same length ({len(urls)} != {len(metadata)})"
            )
        photos = [parse_photo(entry, i, image_url=url) for i, (url, entry) in enumerate(zip(urls, metadata))]
    else:
        raise InvalidRequestError("Request must contain photos")

    validate_batch(photos, settings)
    return photos


def validate_batch(photos: Sequence[PhotoRecord], settings: Settings) -> None:
    if not photos:
        raise InvalidRequestError("Batch is empty")
    if len(photos) > settings.max_batch_size:
        raise InvalidRequestError(f"Batch of {len(photos)} photos exceeds limit of {settings.max_batch_size}")

    seen: Set[str] = set()
    for photo in photos:
        if photo.id in seen:
            raise InvalidRequestError(f"Duplicate photo id {photo.id!r}")
        seen.add(photo.id)


class PhotoAnalyzer:
    """
    Runs the whole analysis for one batch.

    Classification Strategy:
    1. Optionally fingerprint each photo from its pixels
    2. Pick temporal candidates; photos with none are unique outright
    3. Classify the rest with the vision classifier (if any) in
       sub-batches, each call bounded by a hard timeout, or heuristically
    4. Restore batch order and build groups
    """

    def __init__(self,
                 settings: Optional[Settings] = None,
                 classifier: Optional[VisionClassifier] = None,
                 fetcher: Optional[ImageFetcher] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = (settings or Settings()).validate()
        self.classifier = classifier
        self.fetcher = fetcher
        self._sleep = sleep

        logger.info(f"PhotoAnalyzer initialized: vision={'enabled' if classifier else 'disabled'}")

    def analyze(self, photos: Sequence[PhotoRecord], cancel_event: Optional[threading.Event] = None) -> AnalysisReport:
        """
        Analyze a validated batch.

        Raises:
            InvalidRequestError: If the batch is empty, too large or has duplicate ids
            AnalysisCancelled: If ``cancel_event`` is set before grouping
        """
        validate_batch(photos, self.settings)
        start = time.perf_counter()
        logger.info(f"Starting analysis of {len(photos)} photos")

        photos, fingerprint_notes = self._fingerprint(list(photos), cancel_event)
        self._check_cancelled(cancel_event)

        results: Dict[str, AnalysisResult] = {}
        pending: List[Tuple[PhotoRecord, List[PhotoRecord]]] = []
        for photo in photos:
            candidates = select_candidates(
                photo, photos,
                window_seconds=self.settings.proximity_window_seconds,
                max_candidates=self.settings.max_candidates,
            )
            if candidates:
                pending.append((photo, candidates))
            else:
                results[photo.id] = no_neighbors_result(photo)

        if self.classifier is None:
            for photo, candidates in pending:
                results[photo.id] = classify_heuristically(photo, candidates, self.settings)
        else:
            results.update(self._classify_with_vision(pending, cancel_event))

        self._check_cancelled(cancel_event)

        # Barrier: grouping only sees a complete set, in batch order.
        ordered = []
        for photo in photos:
            result = results[photo.id]
            note = fingerprint_notes.get(photo.id)
            if note:
                result = replace(
                    result,
                    degraded=True,
                    technical_notes="; ".join(filter(None, [result.technical_notes, note])),
                )
            ordered.append(result)

        groups = build_groups(ordered)
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        report = AnalysisReport(
            results=tuple(ordered),
            groups=tuple(groups),
            analysis_time_ms=elapsed_ms,
            analysis_method=self._analysis_method([results[photo.id] for photo, _ in pending]),
            summary=summarize(ordered, groups),
        )
        logger.info(f"Analysis completed: {len(groups)} groups found in {elapsed_ms}ms")
        return report

    def _fingerprint(self,
                     photos: List[PhotoRecord],
                     cancel_event: Optional[threading.Event]) -> Tuple[List[PhotoRecord], Dict[str, str]]:
        """Recompute fingerprints from pixels; failures keep the supplied value."""
        notes: Dict[str, str] = {}
        if self.fetcher is None:
            return photos, notes

        targets = [photo for photo in photos if photo.image_url]
        if not targets:
            return photos, notes

        fetcher = self.fetcher

        def fingerprint_one(photo: PhotoRecord) -> Tuple[str, Optional[str], Optional[str]]:
            try:
                return photo.id, str(fetcher.fingerprint(photo.image_url)), None
            except FingerprintError as exc:
                logger.warning(f"Fingerprint unavailable for {photo.id}: {exc}")
                return photo.id, None, f"fingerprint_unavailable: {exc}"

        self._check_cancelled(cancel_event)
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            outcomes = list(executor.map(fingerprint_one, targets))

        computed = {}
        for photo_id, fingerprint, note in outcomes:
            if fingerprint is not None:
                computed[photo_id] = fingerprint
            else:
                notes[photo_id] = note

        updated = [
            replace(photo, fingerprint=computed[photo.id]) if photo.id in computed else photo
            for photo in photos
        ]
        logger.info(f"Fingerprinted {len(computed)}/{len(targets)} photos")
        return updated, notes

    def _classify_with_vision(self,
                              pending: List[Tuple[PhotoRecord, List[PhotoRecord]]],
                              cancel_event: Optional[threading.Event]) -> Dict[str, AnalysisResult]:
        results: Dict[str, AnalysisResult] = {}
        size = self.settings.vision_sub_batch_size
        workers = min(self.settings.max_workers, size)
        hard_timeout = self.settings.vision_timeout_seconds + TIMEOUT_GRACE_SECONDS
        batches = [pending[i:i + size] for i in range(0, len(pending), size)]

        for number, batch in enumerate(batches, start=1):
            self._check_cancelled(cancel_event)
            logger.info(f"Classifying sub-batch {number}/{len(batches)} ({len(batch)} photos)")

            # Waves never exceed the worker count, so every call starts on
            # submission and its deadline covers only its own run time.
            for offset in range(0, len(batch), workers):
                self._check_cancelled(cancel_event)
                results.update(self._run_wave(batch[offset:offset + workers], hard_timeout))

            if number < len(batches) and self.settings.vision_batch_delay_seconds > 0:
                self._pause(self.settings.vision_batch_delay_seconds, cancel_event)

        return results

    def _run_wave(self,
                  wave: List[Tuple[PhotoRecord, List[PhotoRecord]]],
                  hard_timeout: float) -> Dict[str, AnalysisResult]:
        # A fresh pool per wave: a call abandoned at its deadline keeps its
        # thread, and must not hold a worker the next wave needs.
        executor = ThreadPoolExecutor(max_workers=len(wave))
        try:
            futures: List[Tuple[PhotoRecord, List[PhotoRecord], Future]] = [
                (photo, candidates, executor.submit(self.classifier.classify, photo, candidates))
                for photo, candidates in wave
            ]
            deadline = time.monotonic() + hard_timeout
            return {
                photo.id: self._collect(photo, candidates, future, deadline, hard_timeout)
                for photo, candidates, future in futures
            }
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _collect(self,
                 photo: PhotoRecord,
                 candidates: List[PhotoRecord],
                 future: Future,
                 deadline: float,
                 hard_timeout: float) -> AnalysisResult:
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f"Vision classification for {photo.id} exceeded {hard_timeout:g}s")
            reason = f"vision_fallback: timed out after {hard_timeout:g}s"
        except Exception as exc:
            logger.error(f"Classification failed for {photo.id}: {exc}")
            reason = f"vision_fallback: classifier raised {type(exc).__name__}: {exc}"
        return classify_heuristically(photo, candidates, self.settings, note=reason)

    def _pause(self, seconds: float, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None:
            if cancel_event.wait(seconds):
                raise AnalysisCancelled("Analysis cancelled")
        else:
            self._sleep(seconds)

    def _analysis_method(self, classified: List[AnalysisResult]) -> str:
        if self.classifier is None or not classified:
            return "heuristic"
        sources = {result.source for result in classified}
        if sources == {"vision"}:
            return "vision"
        if "vision" in sources:
            return "hybrid"
        return "heuristic"

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelled("Analysis cancelled")


def analyze_request(payload: Any,
                    settings: Optional[Settings] = None,
                    classifier: Optional[VisionClassifier] = None,
                    fetcher: Optional[ImageFetcher] = None,
                    cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
    """Validate ``payload``, analyze it and return the response dictionary."""
    settings = settings or Settings()
    photos = parse_request(payload, settings)
    analyzer = PhotoAnalyzer(settings=settings, classifier=classifier, fetcher=fetcher)
    return analyzer.analyze(photos, cancel_event=cancel_event).to_dict()
