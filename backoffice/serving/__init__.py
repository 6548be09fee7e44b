"""
Serving Module
"""
from .cache import (
    CacheManager,
    DashboardCache,
    cache_get,
    cache_set,
    close_redis,
    dashboard_cache,
    get_redis,
    init_redis,
)

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "cache_get",
    "cache_set",
    "CacheManager",
    "DashboardCache",
    "dashboard_cache",
]
