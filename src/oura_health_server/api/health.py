"""Health check and Prometheus scrape endpoints."""

from litestar import Response, Router, get
from litestar.datastructures import State
from litestar.status_codes import HTTP_200_OK

from oura_health_server import __version__


@get("/health", status_code=HTTP_200_OK, sync_to_thread=False)
def health_check(state: State) -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Status, service name and version
    """
    return {
        "status": "healthy",
        "service": state.service,
        "version": __version__,
    }


@get("/metrics", status_code=HTTP_200_OK, sync_to_thread=False, include_in_schema=False)
def prometheus_metrics(state: State) -> Response[bytes]:
    """Expose this service's Prometheus registry."""
    metrics = state.metrics
    return Response(content=metrics.render(), media_type=metrics.content_type)


health_router = Router(path="/", route_handlers=[health_check, prometheus_metrics], tags=["health"])
