"""
API Module
"""
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "RateLimitMiddleware",
]
