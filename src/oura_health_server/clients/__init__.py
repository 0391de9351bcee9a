"""Outbound HTTP clients."""

from oura_health_server.clients.oura import OuraClient
from oura_health_server.clients.processor import ProcessorClient

__all__ = ["OuraClient", "ProcessorClient"]
