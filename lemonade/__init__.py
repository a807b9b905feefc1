"""Lemonade: multi-tenant backend-as-a-service API."""

__version__ = "0.1.0"
