"""Database models."""

from oura_health_server.models.activity import ActivityMetric
from oura_health_server.models.base import Base
from oura_health_server.models.oauth_token import OURA_PROVIDER, OAuthToken
from oura_health_server.models.readiness import ReadinessMetric
from oura_health_server.models.sleep import SleepMetric
from oura_health_server.models.user import User

__all__ = [
    "Base",
    "ActivityMetric",
    "OAuthToken",
    "OURA_PROVIDER",
    "ReadinessMetric",
    "SleepMetric",
    "User",
]
