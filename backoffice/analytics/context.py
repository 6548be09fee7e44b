"""
Per-request report context.

Resolves the store timezone, the primary period and the ledger filter once
per request so every report built from it shares the same window.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.analytics.exceptions import AggregationFailure
from backoffice.analytics.ledgers import LedgerFilter
from backoffice.analytics.periods import DashboardFilters, PrimaryPeriod, resolve_primary_period
from backoffice.analytics.timezone import UTC, TimeWindow, TimezoneResolver, get_timezone_resolver
from backoffice.config import AnalyticsSettings, get_settings

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ReportContext:
    store_id: str
    tz: str
    now: datetime
    filters: DashboardFilters
    period: PrimaryPeriod
    ledger_filter: LedgerFilter

    @property
    def window(self) -> TimeWindow:
        return self.period.window


class ReportService:
    """Base for services that report over a resolved primary period."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: Optional[TimezoneResolver] = None,
        settings: Optional[AnalyticsSettings] = None,
        clock: Clock = system_clock,
    ):
        self.session_factory = session_factory
        self.resolver = resolver or get_timezone_resolver()
        self.settings = settings or get_settings().analytics
        self.clock = clock

    def context(self, store_id: str, filters: Optional[DashboardFilters] = None) -> ReportContext:
        filters = filters or DashboardFilters()
        tz = self.resolver.get_store_timezone(store_id)
        now = self.clock()
        period = resolve_primary_period(filters, tz, now, self.settings.default_period_days)
        return ReportContext(
            store_id=store_id,
            tz=tz,
            now=now,
            filters=filters,
            period=period,
            ledger_filter=LedgerFilter.from_filters(store_id, filters),
        )

    async def soft(self, ctx: ReportContext, metric: str, awaitable, default: Callable[[], object]):
        """Await a sub-metric, degrading to ``default()`` if its aggregation fails."""
        try:
            return await awaitable
        except AggregationFailure as e:
            logger.warning(
                "Metric degraded to default",
                metric=metric,
                store_id=ctx.store_id,
                filters=ctx.filters.signature(),
                error=e.message,
            )
            return default()
