"""FastAPI routers package."""

from .health import router as health_router
from .metrics import router as metrics_router
from .rooms import router as rooms_router

__all__ = [
    "health_router",
    "metrics_router",
    "rooms_router",
]
