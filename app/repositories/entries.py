from dataclasses import dataclass
from typing import Any, Callable, Mapping

from app.clients.postgres import get_pg_connection
from app.errors import StorageUnavailableError
from app.models.entry import EntryMetrics, PublishedEntry


@dataclass(frozen=True)
class EntryStorage:
    connection_provider: Callable[..., Any] = get_pg_connection

    async def get(self, entry_id: int) -> Mapping[str, Any] | None:
        query = """
            SELECT
                id, collection_id, title, description, type, media_url, thumb_url,
                tags, difficulty, price_range, materials, trend_score, supports_booking,
                source, submitter_id, curated_by, likes, saves, shares,
                created_at, updated_at
            FROM collection_entries
            WHERE id = $1
        """
        try:
            async with self.connection_provider() as connection:
                record = await connection.fetchrow(query, entry_id)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        if record is None:
            return None
        return dict(record)


@dataclass(frozen=True)
class EntryRepository:
    entry_storage: EntryStorage = EntryStorage()

    async def get(self, entry_id: int) -> PublishedEntry | None:
        raw_entry = await self.entry_storage.get(entry_id)
        if raw_entry is None:
            return None
        payload = dict(raw_entry)
        payload["metrics"] = EntryMetrics(
            likes=payload.pop("likes"),
            saves=payload.pop("saves"),
            shares=payload.pop("shares"),
        )
        payload["tags"] = list(payload.get("tags") or [])
        payload["materials"] = list(payload.get("materials") or [])
        return PublishedEntry.model_validate(payload)
