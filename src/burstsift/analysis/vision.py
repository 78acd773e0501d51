"""
Vision-based classification through an external model service.

The target photo and its temporal candidates are sent together with
relative capture offsets to an OpenAI-compatible chat completions
endpoint. The reply must be a JSON object following the contract in
``PROMPT_TEMPLATE``. Any failure (timeout, transport error, malformed or
out-of-contract reply, rate limiting) drops to the heuristic classifier so
callers always receive a result.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from ..config import Settings
from ..logging import get_logger
from .heuristics import classify_heuristically
from .model import AnalysisResult, Decision, PhotoRecord
from .quality import estimate_quality, quality_from_assessment
from .ratelimit import RateLimiter

logger = get_logger(__name__)


class VisionClassifierError(Exception):
    """Raised when the vision service cannot be reached or answers with an error."""


class MalformedVisionResponse(VisionClassifierError):
    """Raised when the service reply does not follow the response contract."""


class VisionClient(Protocol):
    def complete(self, prompt: str, image_urls: Sequence[str], timeout: float) -> str:
        ...


PROMPT_TEMPLATE = """You are reviewing construction job-site photos for duplicates.

Image 1 is the TARGET photo. The following images are CANDIDATES taken close in time,
numbered from 0 in the order listed below:
{candidate_lines}

Decide whether the TARGET is:
- "duplicate": the same shot taken twice,
- "burst_shot": one of several rapid-fire shots of the same subject,
- "similar": a loosely similar composition of the same subject,
- "unique": not related to any candidate.

Reply with ONLY a JSON object with these keys:
{{
  "decision": "duplicate" | "burst_shot" | "similar" | "unique",
  "confidence": number between 0 and 1,
  "reasoning": string,
  "visualObservations": string,
  "relatedCandidateIndices": [candidate numbers related to the TARGET],
  "patterns": [short tags such as "same_location", "same_subject"],
  "qualityAssessment": {{
    "sharpness": 0-1, "composition": 0-1, "lighting": 0-1,
    "subjectClarity": 0-1, "notes": string
  }}
}}
Include "qualityAssessment" only when decision is "duplicate" or "burst_shot";
it scores the TARGET photo."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


class HttpVisionClient:
    """Client for an OpenAI-compatible chat completions endpoint with image input."""

    def __init__(self,
                 endpoint: str,
                 model: str,
                 api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 max_tokens: int = 800):
        self.endpoint = endpoint
        self.model = model
        self.api_key = api_key
        self.session = session or requests.Session()
        self.max_tokens = max_tokens

    def complete(self, prompt: str, image_urls: Sequence[str], timeout: float) -> str:
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for url in image_urls:
            content.append({"type": "image_url", "image_url": {"url": url}})

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": 0.1,
            "max_tokens": self.max_tokens,
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self.session.post(self.endpoint, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise VisionClassifierError(f"Vision request timed out after {timeout:g}s") from exc
        except requests.exceptions.RequestException as exc:
            raise VisionClassifierError(f"Vision request failed: {exc}") from exc

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise MalformedVisionResponse(f"Unexpected completion payload: {exc}") from exc


def build_prompt(target: PhotoRecord, candidates: Sequence[PhotoRecord]) -> str:
    """Render the prompt with each candidate's offset from the target."""
    lines = []
    for index, candidate in enumerate(candidates):
        offset = candidate.captured_at - target.captured_at
        lines.append(f"- Candidate {index} (image {index + 2}): captured {offset:+g} seconds relative to TARGET")
    return PROMPT_TEMPLATE.format(candidate_lines="\n".join(lines))


def _load_json_object(text: str) -> Dict[str, Any]:
    if not isinstance(text, str) or not text.strip():
        raise MalformedVisionResponse("Empty response")

    body = text.strip()
    fenced = _FENCE_RE.search(body)
    if fenced:
        body = fenced.group(1)

    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedVisionResponse(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedVisionResponse(f"Response must be a JSON object, got {type(data).__name__}")
    return data


def _translate_indices(raw: Any, candidates: Sequence[PhotoRecord]) -> List[str]:
    """Map candidate indices back to photo ids in candidate order."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedVisionResponse(f"relatedCandidateIndices must be a list, got {raw!r}")

    related: List[str] = []
    for index in raw:
        if isinstance(index, bool) or not isinstance(index, int):
            raise MalformedVisionResponse(f"Candidate index must be an integer, got {index!r}")
        if not 0 <= index < len(candidates):
            raise MalformedVisionResponse(
                f"Candidate index {index} out of range for {len(candidates)} candidates"
            )
        photo_id = candidates[index].id
        if photo_id not in related:
            related.append(photo_id)
    return related


def parse_vision_response(
    text: str,
    target: PhotoRecord,
    candidates: Sequence[PhotoRecord],
) -> AnalysisResult:
    """
    Validate a service reply and turn it into an AnalysisResult.

    Omitted fields default conservatively (unique, confidence 0.7, nothing
    related). Present-but-invalid fields raise.

    Raises:
        MalformedVisionResponse: If the reply breaks the contract
    """
    data = _load_json_object(text)

    raw_decision = data.get("decision")
    if raw_decision is None:
        decision = Decision.UNIQUE
    else:
        try:
            decision = Decision.parse(raw_decision)
        except ValueError as exc:
            raise MalformedVisionResponse(f"Unknown decision {raw_decision!r}") from exc

    raw_confidence = data.get("confidence", 0.7)
    if isinstance(raw_confidence, bool) or not isinstance(raw_confidence, (int, float)) or math.isnan(raw_confidence):
        raise MalformedVisionResponse(f"confidence must be a number, got {raw_confidence!r}")
    confidence = max(0.0, min(1.0, float(raw_confidence)))

    related = _translate_indices(data.get("relatedCandidateIndices"), candidates)
    if decision is Decision.UNIQUE:
        related = []

    raw_patterns = data.get("patterns") or []
    if not isinstance(raw_patterns, list) or not all(isinstance(p, str) for p in raw_patterns):
        raise MalformedVisionResponse(f"patterns must be a list of strings, got {raw_patterns!r}")

    quality = None
    if decision in (Decision.DUPLICATE, Decision.BURST_SHOT):
        block = data.get("qualityAssessment")
        if block is None:
            quality = estimate_quality(target)
        else:
            try:
                quality = quality_from_assessment(block)
            except ValueError as exc:
                raise MalformedVisionResponse(str(exc)) from exc

    candidate_ids = ", ".join(c.id for c in candidates)
    return AnalysisResult(
        photo_id=target.id,
        decision=decision,
        confidence=confidence,
        reasoning=str(data.get("reasoning") or ""),
        visual_observations=str(data.get("visualObservations") or ""),
        technical_notes=f"analysis: vision; candidates: {candidate_ids}",
        related_photo_ids=tuple(related),
        patterns=tuple(dict.fromkeys(raw_patterns)),
        quality_metrics=quality,
        source="vision",
    )


class VisionClassifier:
    """
    Classifies a photo with the external vision service, falling back to
    heuristics on any failure.
    """

    def __init__(self,
                 client: VisionClient,
                 settings: Optional[Settings] = None,
                 rate_limiter: Optional[RateLimiter] = None):
        self.client = client
        self.settings = settings or Settings()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.settings.rate_limit_requests,
            window_seconds=self.settings.rate_limit_window_seconds,
        )

    def classify(self, target: PhotoRecord, candidates: Sequence[PhotoRecord]) -> AnalysisResult:
        """
        Classify ``target`` against ``candidates``.

        Never raises for per-photo problems; the returned result has
        ``source="heuristic"`` and a ``vision_fallback`` note when the
        service was not used.
        """
        if not target.image_url:
            return self.fallback(target, candidates, "no image content")

        visual = [c for c in candidates if c.image_url]
        if not visual:
            return self.fallback(target, candidates, "candidate images unavailable")

        if not self.rate_limiter.try_acquire():
            wait = self.rate_limiter.retry_after()
            return self.fallback(target, candidates, f"rate limited, retry after {wait:.0f}s")

        prompt = build_prompt(target, visual)
        urls = [target.image_url] + [c.image_url for c in visual]

        try:
            text = self.client.complete(prompt, urls, timeout=self.settings.vision_timeout_seconds)
            result = parse_vision_response(text, target, visual)
        except MalformedVisionResponse as exc:
            return self.fallback(target, candidates, f"malformed response: {exc}")
        except VisionClassifierError as exc:
            return self.fallback(target, candidates, f"service error: {exc}")
        except Exception as exc:
            return self.fallback(target, candidates, f"unexpected error: {exc}")

        logger.debug(f"Vision classification for {target.id}: {result.decision.value} ({result.confidence:.2f})")
        return result

    def fallback(self, target: PhotoRecord, candidates: Sequence[PhotoRecord], reason: str) -> AnalysisResult:
        logger.warning(f"Vision classification unavailable for {target.id}, using heuristics: {reason}")
        return classify_heuristically(target, candidates, self.settings, note=f"vision_fallback: {reason}")


def is_vision_available(settings: Settings) -> bool:
    """Check if a vision endpoint is configured."""
    return settings.vision_endpoint is not None and len(settings.vision_endpoint.strip()) > 0


def create_vision_classifier(
    settings: Settings,
    rate_limiter: Optional[RateLimiter] = None,
) -> Optional[VisionClassifier]:
    """Build a classifier for the configured endpoint, or None if there is none."""
    if not is_vision_available(settings):
        return None
    client = HttpVisionClient(
        endpoint=settings.vision_endpoint,
        model=settings.vision_model,
        api_key=settings.vision_api_key,
    )
    return VisionClassifier(client, settings=settings, rate_limiter=rate_limiter)


def get_vision_status(settings: Settings, rate_limiter: Optional[RateLimiter] = None) -> Dict[str, Any]:
    """Get current status of the vision classification path."""
    status = {
        "available": is_vision_available(settings),
        "apiKeyConfigured": bool(settings.vision_api_key),
        "model": settings.vision_model,
        "mode": "vision" if is_vision_available(settings) else "heuristic",
    }
    if rate_limiter is not None:
        status["rateLimit"] = rate_limiter.status()
    return status
