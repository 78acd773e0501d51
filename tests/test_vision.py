"""Tests for the external vision classifier adapter."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from burstsift.analysis.model import Decision
from burstsift.analysis.ratelimit import RateLimiter
from burstsift.analysis.vision import (
    HttpVisionClient,
    MalformedVisionResponse,
    VisionClassifier,
    VisionClassifierError,
    build_prompt,
    create_vision_classifier,
    get_vision_status,
    is_vision_available,
    parse_vision_response,
)
from burstsift.config import Settings
from tests.helpers.photos import SITE_LAT, SITE_LON, make_photo


class StubClient:
    """Returns a canned reply, or raises, and records each call."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, prompt, image_urls, timeout):
        self.calls.append({"prompt": prompt, "image_urls": list(image_urls), "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.reply if isinstance(self.reply, str) else json.dumps(self.reply)


def photos_with_urls():
    target = make_photo("t", 100, SITE_LAT, SITE_LON, image_url="https://img/t.jpg")
    candidates = [
        make_photo("c0", 101, SITE_LAT, SITE_LON, image_url="https://img/c0.jpg"),
        make_photo("c1", 103, image_url="https://img/c1.jpg"),
        make_photo("c2", 90, image_url="https://img/c2.jpg"),
    ]
    return target, candidates


class TestParseVisionResponse:
    def test_indices_translate_to_candidate_ids(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({
            "decision": "burst_shot",
            "confidence": 0.93,
            "reasoning": "Same framing",
            "relatedCandidateIndices": [0, 2],
            "qualityAssessment": {"sharpness": 0.9, "composition": 0.8, "lighting": 0.7, "subjectClarity": 0.6},
        })

        result = parse_vision_response(reply, target, candidates)

        assert result.related_photo_ids == ("c0", "c2")
        assert result.decision is Decision.BURST_SHOT
        assert result.confidence == 0.93
        assert result.source == "vision"
        assert result.quality_metrics.estimated is False
        assert result.quality_metrics.overall_quality == pytest.approx(0.75)

    def test_last_index_maps_to_last_candidate(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({"decision": "duplicate", "relatedCandidateIndices": [len(candidates) - 1]})

        result = parse_vision_response(reply, target, candidates)
        assert result.related_photo_ids == ("c2",)

    def test_out_of_range_index_is_malformed(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({"decision": "duplicate", "relatedCandidateIndices": [len(candidates)]})

        with pytest.raises(MalformedVisionResponse):
            parse_vision_response(reply, target, candidates)

    @pytest.mark.parametrize("indices", [[-1], ["0"], [1.5], [True], "0,1"])
    def test_invalid_indices_are_malformed(self, indices):
        target, candidates = photos_with_urls()
        reply = json.dumps({"decision": "similar", "relatedCandidateIndices": indices})

        with pytest.raises(MalformedVisionResponse):
            parse_vision_response(reply, target, candidates)

    def test_missing_fields_default_conservatively(self):
        target, candidates = photos_with_urls()

        result = parse_vision_response("{}", target, candidates)

        assert result.decision is Decision.UNIQUE
        assert result.confidence == 0.7
        assert result.related_photo_ids == ()
        assert result.quality_metrics is None

    def test_unique_drops_related(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({"decision": "unique", "relatedCandidateIndices": [0]})

        result = parse_vision_response(reply, target, candidates)
        assert result.related_photo_ids == ()

    def test_fenced_json_is_accepted(self):
        target, candidates = photos_with_urls()
        reply = "Here you go:\n```json\n{\"decision\": \"similar\", \"relatedCandidateIndices\": [1]}\n```"

        result = parse_vision_response(reply, target, candidates)
        assert result.decision is Decision.SIMILAR
        assert result.related_photo_ids == ("c1",)

    def test_duplicate_without_assessment_gets_estimate(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({"decision": "duplicate", "relatedCandidateIndices": [0]})

        result = parse_vision_response(reply, target, candidates)
        assert result.quality_metrics.estimated is True

    def test_similar_ignores_assessment(self):
        target, candidates = photos_with_urls()
        reply = json.dumps({
            "decision": "similar",
            "relatedCandidateIndices": [0, 1],
            "qualityAssessment": {"sharpness": 1, "composition": 1, "lighting": 1, "subjectClarity": 1},
        })

        assert parse_vision_response(reply, target, candidates).quality_metrics is None

    def test_confidence_clamped(self):
        target, candidates = photos_with_urls()
        result = parse_vision_response(json.dumps({"confidence": 1.7}), target, candidates)
        assert result.confidence == 1.0

    @pytest.mark.parametrize("reply", [
        "",
        "not json at all",
        "[1, 2, 3]",
        json.dumps({"decision": "maybe"}),
        json.dumps({"confidence": "high"}),
        json.dumps({"patterns": "same_location"}),
        json.dumps({"decision": "burst_shot", "relatedCandidateIndices": [0],
                    "qualityAssessment": {"sharpness": "blurry"}}),
    ])
    def test_malformed_replies_raise(self, reply):
        target, candidates = photos_with_urls()
        with pytest.raises(MalformedVisionResponse):
            parse_vision_response(reply, target, candidates)


class TestBuildPrompt:
    def test_candidates_numbered_with_offsets(self):
        target, candidates = photos_with_urls()
        prompt = build_prompt(target, candidates)

        assert "Candidate 0 (image 2): captured +1 seconds" in prompt
        assert "Candidate 2 (image 4): captured -10 seconds" in prompt
        assert '"relatedCandidateIndices"' in prompt


class TestVisionClassifier:
    def test_successful_classification(self):
        target, candidates = photos_with_urls()
        client = StubClient({"decision": "burst_shot", "confidence": 0.9, "relatedCandidateIndices": [0, 1]})
        classifier = VisionClassifier(client, Settings(vision_timeout_seconds=12))

        result = classifier.classify(target, candidates)

        assert result.source == "vision"
        assert result.related_photo_ids == ("c0", "c1")
        call = client.calls[0]
        assert call["image_urls"] == ["https://img/t.jpg", "https://img/c0.jpg", "https://img/c1.jpg", "https://img/c2.jpg"]
        assert call["timeout"] == 12

    def test_client_exception_falls_back(self):
        target, candidates = photos_with_urls()
        classifier = VisionClassifier(StubClient(error=RuntimeError("boom")))

        result = classifier.classify(target, candidates)

        assert result.source == "heuristic"
        assert result.degraded is True
        assert "vision_fallback: unexpected error: boom" in result.technical_notes
        assert result.decision is Decision.BURST_SHOT

    def test_service_error_falls_back(self):
        target, candidates = photos_with_urls()
        classifier = VisionClassifier(StubClient(error=VisionClassifierError("503")))

        result = classifier.classify(target, candidates)
        assert "vision_fallback: service error: 503" in result.technical_notes

    def test_malformed_reply_falls_back(self):
        target, candidates = photos_with_urls()
        classifier = VisionClassifier(StubClient("<html>oops</html>"))

        result = classifier.classify(target, candidates)
        assert "vision_fallback: malformed response" in result.technical_notes
        assert result.source == "heuristic"

    def test_bad_index_falls_back(self):
        target, candidates = photos_with_urls()
        classifier = VisionClassifier(StubClient({"decision": "duplicate", "relatedCandidateIndices": [7]}))

        result = classifier.classify(target, candidates)
        assert result.source == "heuristic"
        assert "out of range" in result.technical_notes

    def test_missing_target_image_uses_heuristics(self):
        _, candidates = photos_with_urls()
        target = make_photo("t", 100)
        client = StubClient({"decision": "unique"})

        result = VisionClassifier(client).classify(target, candidates)

        assert client.calls == []
        assert "vision_fallback: no image content" in result.technical_notes
        assert result.quality_metrics.estimated is True

    def test_candidates_without_images_are_not_sent(self):
        target, candidates = photos_with_urls()
        candidates = [make_photo("bare", 101)] + candidates[1:]
        client = StubClient({"decision": "similar", "relatedCandidateIndices": [0]})

        result = VisionClassifier(client).classify(target, candidates)

        assert client.calls[0]["image_urls"] == ["https://img/t.jpg", "https://img/c1.jpg", "https://img/c2.jpg"]
        assert result.related_photo_ids == ("c1",)

    def test_rate_limited_falls_back_without_calling(self):
        target, candidates = photos_with_urls()
        client = StubClient({"decision": "unique"})
        limiter = RateLimiter(max_requests=1, window_seconds=60)
        classifier = VisionClassifier(client, rate_limiter=limiter)

        first = classifier.classify(target, candidates)
        second = classifier.classify(target, candidates)

        assert first.source == "vision"
        assert second.source == "heuristic"
        assert "rate limited" in second.technical_notes
        assert len(client.calls) == 1


class TestHttpVisionClient:
    def test_posts_chat_completion(self):
        session = MagicMock()
        session.post.return_value.json.return_value = {"choices": [{"message": {"content": "{}"}}]}
        client = HttpVisionClient("https://vision.local/v1/chat/completions", "model-x", api_key="k", session=session)

        text = client.complete("prompt", ["https://img/a.jpg"], timeout=25)

        assert text == "{}"
        _, kwargs = session.post.call_args
        assert kwargs["timeout"] == 25
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        content = kwargs["json"]["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "prompt"}
        assert content[1]["image_url"]["url"] == "https://img/a.jpg"

    def test_timeout_wrapped(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.Timeout("slow")
        client = HttpVisionClient("https://vision.local", "model-x", session=session)

        with pytest.raises(VisionClassifierError, match="timed out"):
            client.complete("prompt", [], timeout=25)

    def test_http_error_wrapped(self):
        session = MagicMock()
        session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("500")
        client = HttpVisionClient("https://vision.local", "model-x", session=session)

        with pytest.raises(VisionClassifierError):
            client.complete("prompt", [], timeout=25)

    def test_unexpected_payload_is_malformed(self):
        session = MagicMock()
        session.post.return_value.json.return_value = {"error": "nope"}
        client = HttpVisionClient("https://vision.local", "model-x", session=session)

        with pytest.raises(MalformedVisionResponse):
            client.complete("prompt", [], timeout=25)


class TestVisionAvailability:
    def test_unconfigured(self):
        settings = Settings()
        assert not is_vision_available(settings)
        assert create_vision_classifier(settings) is None
        assert get_vision_status(settings)["mode"] == "heuristic"

    def test_configured(self):
        settings = Settings(vision_endpoint="https://vision.local/v1/chat/completions")
        classifier = create_vision_classifier(settings)

        assert isinstance(classifier, VisionClassifier)
        assert isinstance(classifier.client, HttpVisionClient)
        assert get_vision_status(settings, classifier.rate_limiter)["rateLimit"]["limit"] == 30
