"""API routers for the LLM relay."""

from .account import router as account_router
from .admin import router as admin_router
from .chat import router as chat_router
from .health import router as health_router
from .metrics import router as metrics_router

__all__ = ["account_router", "admin_router", "chat_router", "health_router", "metrics_router"]
