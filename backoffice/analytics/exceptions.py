"""
Analytics exceptions.

``InvalidPeriod`` and ``AggregationFailure`` on the primary totals are hard
errors. Every other ``AggregationFailure`` is absorbed at the sub-metric
boundary, and ``CacheFailure`` is always logged and ignored.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base exception for all analytics errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidPeriod(AnalyticsError):
    """Raised for a month/year or period descriptor outside the accepted range"""

    def __init__(self, reason: str, **details: Any):
        super().__init__(f"Invalid period: {reason}", "INVALID_PERIOD", details)


class AggregationFailure(AnalyticsError):
    """Raised when a ledger query fails while computing a metric"""

    def __init__(self, metric: str, reason: str, store_id: Optional[str] = None):
        self.metric = metric
        self.store_id = store_id
        super().__init__(
            f"Aggregation '{metric}' failed: {reason}",
            "AGGREGATION_FAILED",
            {"metric": metric, "store_id": store_id},
        )


class CacheFailure(AnalyticsError):
    """Raised when the response cache cannot be read or written"""

    def __init__(self, operation: str, key: str, reason: str):
        super().__init__(
            f"Cache {operation} failed for '{key}': {reason}",
            "CACHE_FAILED",
            {"operation": operation, "key": key},
        )
