"""
modelpublish - Model Publishing Orchestrator

A FastAPI-based service that publishes machine-learning models behind an
API gateway: it validates publish requests, provisions API keys, gateway
routes, rate-limit policies and metadata, and rolls back, audits and
recovers when a step fails.
"""

__version__ = "0.1.0"

from .main import app, create_app

__all__ = ["app", "create_app"]
