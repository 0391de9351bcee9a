"""Business logic services."""

from oura_health_server.services.collector import CollectionResult, CollectorService
from oura_health_server.services.metrics import MetricsService
from oura_health_server.services.oauth import OAuthResult, OAuthService
from oura_health_server.services.scheduler import CollectorScheduler
from oura_health_server.services.users import UserService

__all__ = [
    "CollectionResult",
    "CollectorScheduler",
    "CollectorService",
    "MetricsService",
    "OAuthResult",
    "OAuthService",
    "UserService",
]
