"""Tests for Oura document transformers."""

from oura_health_server.transformers import (
    ActivityTransformer,
    ReadinessTransformer,
    SleepTransformer,
)


class TestSleepTransformer:
    """Test sleep document transformation."""

    def test_transform_v2_document(self) -> None:
        record = {
            "id": "sleep-abc",
            "day": "2026-01-20",
            "score": 84,
            "total_sleep_duration": 27360,
            "contributors": {"deep_sleep": 90},
        }

        assert SleepTransformer.transform(record) == {
            "oura_id": "sleep-abc",
            "day": "2026-01-20",
            "score": 84,
            "duration": 27360,
        }

    def test_duration_defaults_to_zero(self) -> None:
        result = SleepTransformer.transform({"id": "s", "day": "2026-01-20", "score": 70})

        assert result is not None
        assert result["duration"] == 0

    def test_unscored_document_skipped(self) -> None:
        assert SleepTransformer.transform({"id": "s", "day": "2026-01-20", "score": None}) is None


class TestActivityTransformer:
    """Test activity document transformation."""

    def test_activity_time_converted_to_minutes(self) -> None:
        record = {
            "id": "act-1",
            "day": "2026-01-20",
            "score": 88,
            "active_calories": 512,
            "steps": 10234,
            "medium_activity_time": 1830,  # seconds
            "high_activity_time": 600,
        }

        result = ActivityTransformer.transform(record)

        assert result == {
            "oura_id": "act-1",
            "day": "2026-01-20",
            "score": 88,
            "active_calories": 512,
            "steps": 10234,
            "medium_activity_minutes": 30,
            "high_activity_minutes": 10,
        }

    def test_minutes_fields_used_as_is(self) -> None:
        record = {
            "id": "act-1",
            "day": "2026-01-20",
            "score": 88,
            "medium_activity_minutes": 45,
            "high_activity_minutes": 5,
        }

        result = ActivityTransformer.transform(record)

        assert result is not None
        assert (result["medium_activity_minutes"], result["high_activity_minutes"]) == (45, 5)
        assert result["steps"] == 0

    def test_unscored_document_skipped(self) -> None:
        assert ActivityTransformer.transform({"id": "a", "day": "2026-01-20"}) is None


class TestReadinessTransformer:
    """Test readiness document transformation."""

    def test_transform(self) -> None:
        record = {"id": "r-1", "day": "2026-01-20", "score": 79, "temperature_deviation": -0.1}

        assert ReadinessTransformer.transform(record) == {
            "oura_id": "r-1",
            "day": "2026-01-20",
            "score": 79,
        }
