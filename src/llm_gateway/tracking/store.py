"""
Usage log storage.

``InMemoryUsageStore`` is the default; ``PostgresUsageStore`` persists to
the ``llm_usage_logs`` table.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

import asyncpg

from ..core.errors import TrackingError
from ..models.request import TaskType
from ..models.usage import UsageLogRecord

logger = logging.getLogger(__name__)


class UsageStore(ABC):
    """Append-only store of usage log records."""

    @abstractmethod
    async def append(self, record: UsageLogRecord) -> None:
        """Persist one record."""

    @abstractmethod
    async def query(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[UsageLogRecord]:
        """Records with ``start <= timestamp <= end`` matching the filters."""

    async def start(self) -> None:
        """Open connections and prepare storage."""

    async def close(self) -> None:
        """Release connections."""


class InMemoryUsageStore(UsageStore):
    """Lock-guarded list. Contents are lost on restart."""

    def __init__(self):
        self._records: List[UsageLogRecord] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def append(self, record: UsageLogRecord) -> None:
        async with self._lock:
            self._records.append(record)

    async def query(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[UsageLogRecord]:
        async with self._lock:
            return [
                r for r in self._records
                if start <= r.timestamp <= end
                and (user_id is None or r.user_id == user_id)
                and (project_id is None or r.project_id == project_id)
            ]


class PostgresUsageStore(UsageStore):
    """
    PostgreSQL usage store.

    Args:
        database_url: DSN used to create a pool on ``start``
        pool: Existing pool to use instead
    """

    def __init__(self, database_url: Optional[str] = None, pool: Optional[asyncpg.Pool] = None):
        if database_url is None and pool is None:
            raise TrackingError("PostgresUsageStore needs a database_url or a pool")

        self._database_url = database_url
        self._pool = pool
        self._owns_pool = pool is None

    async def start(self) -> None:
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(self._database_url, min_size=1, max_size=5)
            except (asyncpg.PostgresError, OSError) as e:
                raise TrackingError(f"Cannot connect to usage database: {e}")

        await self.init_tables()

    async def init_tables(self) -> None:
        """Initialize the usage table."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS llm_usage_logs (
                        id BIGSERIAL PRIMARY KEY,
                        user_id VARCHAR(255),
                        project_id VARCHAR(255),
                        provider VARCHAR(50) NOT NULL,
                        model VARCHAR(255) NOT NULL,
                        input_tokens INTEGER DEFAULT 0,
                        output_tokens INTEGER DEFAULT 0,
                        total_tokens INTEGER DEFAULT 0,
                        cost DECIMAL(20, 10) DEFAULT 0,
                        latency_ms DOUBLE PRECISION DEFAULT 0,
                        cached BOOLEAN DEFAULT FALSE,
                        task_type VARCHAR(50),
                        status VARCHAR(50) DEFAULT 'success',
                        error_code VARCHAR(100),
                        finish_reason VARCHAR(50),
                        prompt_excerpt TEXT,
                        response_excerpt TEXT,
                        metadata JSONB,
                        created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_created ON llm_usage_logs(created_at)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_user ON llm_usage_logs(user_id)")
                await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_project ON llm_usage_logs(project_id)")

            logger.info("Usage tables initialized")
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise TrackingError(f"Failed to initialize usage tables: {e}")

    async def append(self, record: UsageLogRecord) -> None:
        if self._pool is None:
            raise TrackingError("Usage store not started")

        try:
            async with self._pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO llm_usage_logs
                    (user_id, project_id, provider, model, input_tokens, output_tokens, total_tokens,
                     cost, latency_ms, cached, task_type, status, error_code, finish_reason,
                     prompt_excerpt, response_excerpt, metadata, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
                """,
                    record.user_id,
                    record.project_id,
                    record.provider,
                    record.model,
                    record.input_tokens,
                    record.output_tokens,
                    record.total_tokens,
                    record.cost,
                    record.latency_ms,
                    record.cached,
                    record.task_type.value if record.task_type else None,
                    record.status,
                    record.error_code,
                    record.finish_reason,
                    record.prompt_excerpt,
                    record.response_excerpt,
                    json.dumps(record.metadata, default=str),
                    record.timestamp,
                )
        except asyncpg.PostgresError as e:
            raise TrackingError(f"Failed to store usage record: {e}")

    async def query(
        self,
        start: datetime,
        end: datetime,
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[UsageLogRecord]:
        if self._pool is None:
            raise TrackingError("Usage store not started")

        query = "SELECT * FROM llm_usage_logs WHERE created_at >= $1 AND created_at <= $2"
        params = [start, end]
        if user_id is not None:
            params.append(user_id)
            query += f" AND user_id = ${len(params)}"
        if project_id is not None:
            params.append(project_id)
            query += f" AND project_id = ${len(params)}"
        query += " ORDER BY created_at"

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
        except asyncpg.PostgresError as e:
            raise TrackingError(f"Failed to query usage records: {e}")

        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row) -> UsageLogRecord:
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return UsageLogRecord(
            user_id=row["user_id"],
            project_id=row["project_id"],
            provider=row["provider"],
            model=row["model"],
            input_tokens=row["input_tokens"] or 0,
            output_tokens=row["output_tokens"] or 0,
            total_tokens=row["total_tokens"] or 0,
            cost=float(row["cost"] or 0),
            latency_ms=row["latency_ms"] or 0.0,
            cached=row["cached"],
            task_type=TaskType(row["task_type"]) if row["task_type"] else None,
            status=row["status"],
            error_code=row["error_code"],
            finish_reason=row["finish_reason"],
            prompt_excerpt=row["prompt_excerpt"] or "",
            response_excerpt=row["response_excerpt"] or "",
            metadata=metadata or {},
            timestamp=row["created_at"],
        )

    async def close(self) -> None:
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None
