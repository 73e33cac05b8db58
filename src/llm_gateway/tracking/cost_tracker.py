"""
Cost tracking for LLM usage.

Appends one usage record per call and answers aggregate queries over a
time window. Tracking failures are logged and never reach the caller.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from ..core.errors import TrackingError
from ..models.usage import CostBucket, CostStats, ThresholdStatus, UsageLogRecord, utcnow
from .store import InMemoryUsageStore, UsageStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=30)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CostTracker:
    """
    Usage log and cost aggregation.

    Args:
        store: Usage store. Defaults to an in-memory store.
        enabled: Whether ``track_usage`` records anything
        alert_threshold: Default spend threshold in USD
    """

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        enabled: bool = True,
        alert_threshold: float = 1000.0,
    ):
        self._store = store or InMemoryUsageStore()
        self._enabled = enabled
        self._alert_threshold = alert_threshold

    @property
    def store(self) -> UsageStore:
        return self._store

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def alert_threshold(self) -> float:
        return self._alert_threshold

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Cost tracking {'enabled' if enabled else 'disabled'}")

    async def start(self) -> None:
        """Start the store. A store that cannot start leaves the gateway serving."""
        try:
            await self._store.start()
        except TrackingError as e:
            logger.error(f"Usage store unavailable, usage will not be recorded: {e}")

    async def close(self) -> None:
        await self._store.close()

    async def track_usage(self, record: UsageLogRecord) -> None:
        """Append a record. Never raises."""
        if not self._enabled:
            return

        try:
            await self._store.append(record)
        except Exception as e:
            logger.error(f"Error tracking LLM usage: {e}")

    async def get_cost_stats(
        self,
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> CostStats:
        """
        Aggregate usage over a period.

        Args:
            user_id: Only this user's records
            project_id: Only this project's records
            start: Period start. Defaults to 30 days before ``end``.
            end: Period end. Defaults to now.

        Returns:
            Totals, averages, cache-hit rate and per-provider/model breakdowns
        """
        end = _aware(end) or utcnow()
        start = _aware(start) or end - DEFAULT_WINDOW
        records = await self._store.query(start, end, user_id=user_id, project_id=project_id)

        total_cost = 0.0
        total_tokens = 0
        total_latency = 0.0
        cache_hits = 0
        by_provider: Dict[str, CostBucket] = defaultdict(CostBucket)
        by_model: Dict[str, CostBucket] = defaultdict(CostBucket)

        for record in records:
            total_cost += record.cost
            total_tokens += record.total_tokens
            total_latency += record.latency_ms
            if record.cached:
                cache_hits += 1

            for buckets, key in ((by_provider, record.provider), (by_model, record.model)):
                bucket = buckets[key or "unknown"]
                bucket.cost += record.cost
                bucket.requests += 1

        count = len(records)
        return CostStats(
            total_cost=total_cost,
            total_requests=count,
            total_tokens=total_tokens,
            average_cost_per_request=total_cost / count if count else 0.0,
            average_latency_ms=total_latency / count if count else 0.0,
            cache_hit_rate=cache_hits / count if count else 0.0,
            by_provider=dict(by_provider),
            by_model=dict(by_model),
            period_start=start,
            period_end=end,
        )

    async def _grouped_cost(
        self,
        field: str,
        start: Optional[datetime],
        end: Optional[datetime],
        user_id: Optional[str] = None,
    ) -> Dict[str, float]:
        records = await self._store.query(
            _aware(start) or EPOCH, _aware(end) or utcnow(), user_id=user_id
        )

        totals: Dict[str, float] = defaultdict(float)
        for record in records:
            key = getattr(record, field)
            if key:
                totals[key] += record.cost

        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    async def get_cost_by_user(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Total cost per user, highest first. Records without a user are skipped."""
        return await self._grouped_cost("user_id", start, end)

    async def get_cost_by_project(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Total cost per project, highest first. Records without a project are skipped."""
        return await self._grouped_cost("project_id", start, end, user_id=user_id)

    async def check_cost_threshold(
        self,
        user_id: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> ThresholdStatus:
        """Compare trailing 30-day spend with the alert threshold."""
        threshold = threshold if threshold is not None else self._alert_threshold
        stats = await self.get_cost_stats(user_id=user_id)

        exceeded = stats.total_cost >= threshold
        if exceeded:
            logger.warning(
                f"Cost threshold exceeded: ${stats.total_cost:.2f} >= ${threshold:.2f}"
                + (f" for user {user_id}" if user_id else "")
            )

        return ThresholdStatus(
            exceeded=exceeded,
            current_cost=stats.total_cost,
            threshold=threshold,
        )
