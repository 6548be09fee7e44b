"""
API Routes Module
"""
from .analytics import router as analytics_router
from .expenses import router as expenses_router
from .health import router as health_router

__all__ = [
    "health_router",
    "analytics_router",
    "expenses_router",
]
