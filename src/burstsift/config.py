"""
Tunable thresholds for duplicate and burst analysis.

Every window, epsilon and limit used by the candidate selector, the
heuristic classifier, the vision adapter and the batch pipeline lives
here so that all call sites share one set of named constants.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional


# Candidate selection
PROXIMITY_WINDOW_SECONDS = 30.0   # neighbours considered for comparison
MAX_CANDIDATES = 4                # photos sent alongside the target

# Heuristic decision windows
BURST_WINDOW_SECONDS = 10.0
DUPLICATE_WINDOW_SECONDS = 30.0
SIMILAR_WINDOW_SECONDS = 60.0
SIMILAR_MAX_RELATED = 2
# Degrees of latitude/longitude treated as "same spot". Earlier variants of
# this logic used 1e-4; kept configurable.
GPS_EPSILON = 1e-5

# Fingerprint similarity at or above which two shots are near-identical
SIMILARITY_THRESHOLD = 0.88

# External vision service
VISION_TIMEOUT_SECONDS = 25.0
VISION_SUB_BATCH_SIZE = 5
VISION_BATCH_DELAY_SECONDS = 1.0
RATE_LIMIT_REQUESTS = 30
RATE_LIMIT_WINDOW_SECONDS = 60.0

# Request limits
MAX_BATCH_SIZE = 100
MAX_WORKERS = 5


@dataclass
class Settings:
    proximity_window_seconds: float = PROXIMITY_WINDOW_SECONDS
    max_candidates: int = MAX_CANDIDATES
    burst_window_seconds: float = BURST_WINDOW_SECONDS
    duplicate_window_seconds: float = DUPLICATE_WINDOW_SECONDS
    similar_window_seconds: float = SIMILAR_WINDOW_SECONDS
    similar_max_related: int = SIMILAR_MAX_RELATED
    gps_epsilon: float = GPS_EPSILON
    similarity_threshold: float = SIMILARITY_THRESHOLD
    vision_timeout_seconds: float = VISION_TIMEOUT_SECONDS
    vision_sub_batch_size: int = VISION_SUB_BATCH_SIZE
    vision_batch_delay_seconds: float = VISION_BATCH_DELAY_SECONDS
    rate_limit_requests: int = RATE_LIMIT_REQUESTS
    rate_limit_window_seconds: float = RATE_LIMIT_WINDOW_SECONDS
    max_batch_size: int = MAX_BATCH_SIZE
    max_workers: int = MAX_WORKERS
    vision_endpoint: Optional[str] = None
    vision_model: str = "gpt-4o-mini"
    vision_api_key: Optional[str] = None

    def validate(self) -> "Settings":
        """
        Check that thresholds are usable.

        Raises:
            ValueError: If a window is negative, a size is not positive,
                or the similarity threshold falls outside [0, 1]
        """
        for name in (
            "proximity_window_seconds",
            "burst_window_seconds",
            "duplicate_window_seconds",
            "similar_window_seconds",
            "gps_epsilon",
            "vision_batch_delay_seconds",
            "rate_limit_window_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")

        for name in (
            "max_candidates",
            "similar_max_related",
            "vision_sub_batch_size",
            "rate_limit_requests",
            "max_batch_size",
            "max_workers",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.vision_timeout_seconds <= 0:
            raise ValueError(f"vision_timeout_seconds must be positive, got {self.vision_timeout_seconds}")

        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}")

        return self

    @classmethod
    def from_env(cls, prefix: str = "BURSTSIFT_") -> "Settings":
        """
        Build settings from environment variables.

        Each field maps to ``<prefix><FIELD_NAME>``, e.g.
        ``BURSTSIFT_GPS_EPSILON=0.0001``. Unset variables keep defaults.
        """
        overrides = {}
        for field in fields(cls):
            raw = os.getenv(prefix + field.name.upper())
            if raw is None or raw.strip() == "":
                continue
            default = field.default
            if isinstance(default, bool):
                overrides[field.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(default, int):
                overrides[field.name] = int(raw)
            elif isinstance(default, float):
                overrides[field.name] = float(raw)
            else:
                overrides[field.name] = raw.strip()
        return cls(**overrides).validate()
