"""API v1 package."""

from .agents import router as agents_router
from .conversations import router as conversations_router

__all__ = ["agents_router", "conversations_router"]
