"""
API Routes for the Yuvna lead intelligence service.
"""

from . import buyers, chat, deals, escalation

__all__ = ["buyers", "chat", "deals", "escalation"]
