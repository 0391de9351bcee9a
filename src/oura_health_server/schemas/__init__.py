"""Pydantic schemas for API requests and responses."""

from oura_health_server.schemas.metrics import (
    ActivityData,
    DashboardData,
    DashboardSummaryData,
    IngestRequest,
    MetricType,
    ReadinessData,
    SleepData,
)
from oura_health_server.schemas.oauth import ProviderTokenResponse
from oura_health_server.schemas.users import (
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    UserResponse,
)

__all__ = [
    "ActivityData",
    "DashboardData",
    "DashboardSummaryData",
    "IngestRequest",
    "LoginRequest",
    "LoginResponse",
    "MetricType",
    "ProfileUpdate",
    "ProviderTokenResponse",
    "ReadinessData",
    "RegisterRequest",
    "SleepData",
    "UserResponse",
]
