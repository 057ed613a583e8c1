"""
API Module for the Career Funnel.

FastAPI application with routes for:
- Lead tracking, scoring and routing
- Chat widget
- Routing rule and email sequence management
"""

from .main import create_app

__all__ = ["create_app"]
