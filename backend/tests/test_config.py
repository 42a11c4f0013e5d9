"""
Tests for the lifecycle settings and the staleness threshold limits.
"""
import pytest
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from timeclock.core.clock import FrozenClock
from timeclock.core.config import Settings
from timeclock.services.abandoned_sessions import AbandonedSessionDetector


START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestSettings:

    def test_default_threshold_within_max_duration(self):
        settings = Settings(_env_file=None)

        assert settings.abandoned_session_threshold <= settings.max_session_duration

    def test_threshold_above_max_duration_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                _env_file=None,
                ABANDONED_SESSION_THRESHOLD_HOURS=24,
                MAX_SESSION_DURATION_HOURS=16,
            )

        assert "ABANDONED_SESSION_THRESHOLD_HOURS" in str(exc_info.value)

    def test_threshold_equal_to_max_duration_allowed(self):
        settings = Settings(
            _env_file=None,
            ABANDONED_SESSION_THRESHOLD_HOURS=16,
            MAX_SESSION_DURATION_HOURS=16,
        )

        assert settings.abandoned_session_threshold == timedelta(hours=16)


class TestDetectorThreshold:

    def test_threshold_clamped_to_max_duration(self, repository):
        detector = AbandonedSessionDetector(repository, FrozenClock(START), timedelta(hours=24))

        assert detector.threshold == timedelta(hours=16)

    def test_lower_threshold_kept(self, repository):
        detector = AbandonedSessionDetector(repository, FrozenClock(START), timedelta(hours=2))

        assert detector.threshold == timedelta(hours=2)
