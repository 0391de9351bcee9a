"""Repositories: all SQL lives here."""

from oura_health_server.repositories.metrics import DashboardSummary, MetricsRepository
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.repositories.users import UserChanges, UserRepository

__all__ = [
    "DashboardSummary",
    "MetricsRepository",
    "OAuthTokenRepository",
    "UserChanges",
    "UserRepository",
]
