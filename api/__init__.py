"""
API Module for the Yuvna lead intelligence service.

FastAPI application with routes for:
- Buyers, onboarding and behaviour events
- Chat with the advisory assistant
- Escalation handoff
- Deal pipeline
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
