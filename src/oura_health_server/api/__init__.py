"""API routes.

- api-service: health, accounts, Oura OAuth and the /api/v1 metric reads
- data-processor: health plus the /api/v1 ingest and raw read endpoints
"""

from oura_health_server.api.auth import auth_router
from oura_health_server.api.health import health_router
from oura_health_server.api.ingest import ingest_router
from oura_health_server.api.metrics import metrics_router
from oura_health_server.api.oauth import oauth_router, oauth_success_router

api_routers = [health_router, auth_router, oauth_router, oauth_success_router, metrics_router]

processor_routers = [health_router, ingest_router]

__all__ = ["api_routers", "processor_routers"]
