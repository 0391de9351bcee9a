"""Oura Ring health data services: API, data processor, collector and migrator."""

__version__ = "0.1.0"
