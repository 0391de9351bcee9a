"""Oura document transformers.

Convert raw Oura v2 daily documents into ingest payloads for the data
processor. A transformer returns None for documents without a score
(days Oura has not finished computing).
"""

from typing import Any


def _seconds_to_minutes(value: Any) -> int:
    return int(value or 0) // 60


class SleepTransformer:
    """Transform Oura daily_sleep -> sleep ingest payload."""

    @staticmethod
    def transform(record: dict[str, Any]) -> dict[str, Any] | None:
        if record.get("score") is None:
            return None

        # total_sleep_duration in v2 documents, duration in the flat legacy shape
        duration = record.get("total_sleep_duration", record.get("duration"))

        return {
            "oura_id": record["id"],
            "day": record["day"],
            "score": record["score"],
            "duration": int(duration or 0),
        }


class ActivityTransformer:
    """Transform Oura daily_activity -> activity ingest payload."""

    @staticmethod
    def transform(record: dict[str, Any]) -> dict[str, Any] | None:
        if record.get("score") is None:
            return None

        if "medium_activity_minutes" in record:
            medium = int(record["medium_activity_minutes"] or 0)
        else:
            medium = _seconds_to_minutes(record.get("medium_activity_time"))
        if "high_activity_minutes" in record:
            high = int(record["high_activity_minutes"] or 0)
        else:
            high = _seconds_to_minutes(record.get("high_activity_time"))

        return {
            "oura_id": record["id"],
            "day": record["day"],
            "score": record["score"],
            "active_calories": int(record.get("active_calories") or 0),
            "steps": int(record.get("steps") or 0),
            "medium_activity_minutes": medium,
            "high_activity_minutes": high,
        }


class ReadinessTransformer:
    """Transform Oura daily_readiness -> readiness ingest payload."""

    @staticmethod
    def transform(record: dict[str, Any]) -> dict[str, Any] | None:
        if record.get("score") is None:
            return None

        return {
            "oura_id": record["id"],
            "day": record["day"],
            "score": record["score"],
        }
