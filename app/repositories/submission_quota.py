from dataclasses import dataclass
from datetime import timedelta

from app.clients.redis import get_redis_connection


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    used: int
    retry_after_seconds: int = 0


@dataclass(frozen=True)
class SubmissionQuotaRedisStorage:
    """Дневной счетчик заявок пользователя в Redis (фиксированное окно 24 часа)."""

    _WINDOW: timedelta = timedelta(days=1)
    _KEY_PREFIX: str = "submission_quota"

    async def consume(self, submitter_id: str, limit: int) -> QuotaDecision:
        key = self._build_key(submitter_id)
        async with get_redis_connection() as connection:
            pipeline = connection.pipeline()
            pipeline.incr(key)
            pipeline.expire(key, int(self._WINDOW.total_seconds()), nx=True)
            pipeline.ttl(key)
            used, _, ttl = await pipeline.execute()

        used = int(used)
        if used <= limit:
            return QuotaDecision(allowed=True, used=used)
        retry_after = int(ttl) if ttl and int(ttl) > 0 else int(self._WINDOW.total_seconds())
        return QuotaDecision(allowed=False, used=used, retry_after_seconds=retry_after)

    def _build_key(self, submitter_id: str) -> str:
        return f"{self._KEY_PREFIX}:{submitter_id}"
