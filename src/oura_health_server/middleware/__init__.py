"""ASGI middleware."""

from oura_health_server.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
