import pytest
from hypothesis import given, strategies as st

from burstsift.config import GPS_EPSILON, Settings


class TestSettings:
    def test_default_values(self):
        """Test that Settings carries the documented thresholds."""
        settings = Settings()
        assert settings.proximity_window_seconds == 30.0
        assert settings.max_candidates == 4
        assert settings.burst_window_seconds == 10.0
        assert settings.duplicate_window_seconds == 30.0
        assert settings.similar_window_seconds == 60.0
        assert settings.gps_epsilon == GPS_EPSILON == 1e-5
        assert settings.vision_sub_batch_size == 5
        assert settings.vision_endpoint is None

    def test_custom_values(self):
        settings = Settings(gps_epsilon=1e-4, burst_window_seconds=5)
        assert settings.gps_epsilon == 1e-4
        assert settings.burst_window_seconds == 5

    def test_validate_returns_self(self):
        settings = Settings()
        assert settings.validate() is settings


class TestConfigValidation:
    @given(window=st.floats(max_value=-0.001, allow_nan=False, allow_infinity=False))
    def test_negative_windows_rejected(self, window):
        with pytest.raises(ValueError, match="burst_window_seconds"):
            Settings(burst_window_seconds=window).validate()

    @given(size=st.integers(max_value=0))
    def test_non_positive_sub_batch_rejected(self, size):
        with pytest.raises(ValueError, match="vision_sub_batch_size"):
            Settings(vision_sub_batch_size=size).validate()

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_similarity_threshold_range(self, threshold):
        with pytest.raises(ValueError):
            Settings(similarity_threshold=threshold).validate()

    def test_zero_timeout_rejected(self):
        with pytest.raises(ValueError):
            Settings(vision_timeout_seconds=0).validate()


class TestFromEnv:
    def test_unset_keeps_defaults(self, monkeypatch):
        monkeypatch.delenv("BURSTSIFT_GPS_EPSILON", raising=False)
        assert Settings.from_env().gps_epsilon == 1e-5

    def test_overrides_are_typed(self, monkeypatch):
        monkeypatch.setenv("BURSTSIFT_GPS_EPSILON", "0.0001")
        monkeypatch.setenv("BURSTSIFT_MAX_CANDIDATES", "6")
        monkeypatch.setenv("BURSTSIFT_VISION_ENDPOINT", " https://vision.local/v1/chat/completions ")

        settings = Settings.from_env()

        assert settings.gps_epsilon == 0.0001
        assert settings.max_candidates == 6
        assert settings.vision_endpoint == "https://vision.local/v1/chat/completions"

    def test_blank_value_ignored(self, monkeypatch):
        monkeypatch.setenv("BURSTSIFT_MAX_CANDIDATES", "  ")
        assert Settings.from_env().max_candidates == 4

    def test_invalid_value_raises(self, monkeypatch):
        monkeypatch.setenv("BURSTSIFT_BURST_WINDOW_SECONDS", "-3")
        with pytest.raises(ValueError):
            Settings.from_env()

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("SITEPHOTOS_SIMILAR_WINDOW_SECONDS", "90")
        assert Settings.from_env(prefix="SITEPHOTOS_").similar_window_seconds == 90.0
