"""Data transformers for converting Oura API documents to ingest payloads."""

from oura_health_server.transformers.oura import (
    ActivityTransformer,
    ReadinessTransformer,
    SleepTransformer,
)

__all__ = [
    "ActivityTransformer",
    "ReadinessTransformer",
    "SleepTransformer",
]
