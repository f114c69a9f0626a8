from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping

from app.clients.postgres import get_pg_connection
from app.errors import StorageUnavailableError
from app.models.cost import CostRecord

STATS_SCAN_LIMIT = 1000


@dataclass(frozen=True)
class CostRecordStorage:
    connection_provider: Callable[..., Any] = get_pg_connection

    async def insert(
        self,
        submitter_id: str,
        image_count: int,
        estimated_cost: Decimal,
    ) -> Mapping[str, Any]:
        query = """
            INSERT INTO moderation_costs (submitter_id, image_count, estimated_cost)
            VALUES ($1, $2, $3)
            RETURNING id, submitter_id, image_count, estimated_cost, created_at
        """
        try:
            async with self.connection_provider() as connection:
                record = await connection.fetchrow(query, submitter_id, image_count, estimated_cost)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        if record is None:
            raise StorageUnavailableError("Cost record insert returned no row")
        return dict(record)

    async def sum_since(self, since: datetime) -> Decimal:
        query = """
            SELECT COALESCE(SUM(estimated_cost), 0) AS total
            FROM moderation_costs
            WHERE created_at >= $1
        """
        try:
            async with self.connection_provider() as connection:
                total = await connection.fetchval(query, since)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return Decimal(total or 0)

    async def list_recent(
        self,
        start: datetime | None,
        end: datetime | None,
        limit: int,
    ) -> list[Mapping[str, Any]]:
        query = """
            SELECT id, submitter_id, image_count, estimated_cost, created_at
            FROM moderation_costs
            WHERE ($1::TIMESTAMPTZ IS NULL OR created_at >= $1)
              AND ($2::TIMESTAMPTZ IS NULL OR created_at <= $2)
            ORDER BY created_at DESC
            LIMIT $3
        """
        try:
            async with self.connection_provider() as connection:
                records = await connection.fetch(query, start, end, limit)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return [dict(record) for record in records]


@dataclass(frozen=True)
class CostRecordRepository:
    cost_record_storage: CostRecordStorage = CostRecordStorage()

    async def insert(self, submitter_id: str, image_count: int, estimated_cost: Decimal) -> CostRecord:
        raw_record = await self.cost_record_storage.insert(
            submitter_id=submitter_id,
            image_count=image_count,
            estimated_cost=estimated_cost,
        )
        return CostRecord.model_validate(raw_record)

    async def sum_since(self, since: datetime) -> Decimal:
        return await self.cost_record_storage.sum_since(since)

    async def list_recent(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = STATS_SCAN_LIMIT,
    ) -> list[CostRecord]:
        rows = await self.cost_record_storage.list_recent(start=start, end=end, limit=limit)
        return [CostRecord.model_validate(row) for row in rows]
