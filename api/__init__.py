"""
API Module for CarBot lead scoring.

FastAPI application with routes for:
- Lead scoring (single, batch, tenant rescore)
- Score history and summary statistics
- Manual score overrides
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
