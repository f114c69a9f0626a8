import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Protocol

from app.models.cost import CostStats, DailyCost
from app.repositories.cost_records import STATS_SCAN_LIMIT, CostRecordRepository

logger = logging.getLogger(__name__)


class CostAlertPublisher(Protocol):
    async def send_cost_alert(self, monthly_total: Decimal, threshold: Decimal) -> None:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_start(moment: datetime) -> datetime:
    """Первый момент календарного месяца в UTC."""
    moment = moment.astimezone(timezone.utc)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class CostLedger:
    """
    Учет стоимости обращений к Vision API.

    Месячный итог пересчитывается агрегатом по записям текущего месяца после
    каждой вставки, без транзакции: при конкурентных вставках алерт может
    сработать на одну оценку позже, сами записи не теряются.
    """

    def __init__(
        self,
        cost_repo: CostRecordRepository,
        alert_threshold: Decimal,
        alert_publisher: CostAlertPublisher | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.cost_repo = cost_repo
        self.alert_threshold = alert_threshold
        self.alert_publisher = alert_publisher
        self._clock = clock

    async def record(self, submitter_id: str, image_count: int, estimated_cost: Decimal) -> Decimal:
        """Пишет запись о стоимости и возвращает пересчитанный итог за месяц."""
        await self.cost_repo.insert(
            submitter_id=submitter_id,
            image_count=image_count,
            estimated_cost=estimated_cost,
        )
        monthly_total = await self.cost_repo.sum_since(month_start(self._clock()))

        logger.info(
            "Vision cost recorded submitter_id=%s images=%s cost=%s monthly_total=%s",
            submitter_id,
            image_count,
            estimated_cost,
            monthly_total,
        )

        if monthly_total > self.alert_threshold:
            await self._alert(monthly_total)
        return monthly_total

    async def _alert(self, monthly_total: Decimal) -> None:
        logger.warning(
            "Vision monthly cost threshold exceeded monthly_total=%s threshold=%s",
            monthly_total,
            self.alert_threshold,
        )
        if self.alert_publisher is None:
            return
        try:
            await self.alert_publisher.send_cost_alert(monthly_total, self.alert_threshold)
        except Exception:
            logger.exception("Failed to publish cost alert monthly_total=%s", monthly_total)

    async def get_stats(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> CostStats:
        '''
        статистика по последним 1000 записям в диапазоне [start, end]
        при большом объеме это оценка по свежему окну, а не точный итог
        '''
        records = await self.cost_repo.list_recent(start=start, end=end, limit=STATS_SCAN_LIMIT)

        total_images = 0
        total_cost = Decimal("0")
        by_day: dict[str, DailyCost] = {}
        for record in records:
            total_images += record.image_count
            total_cost += record.estimated_cost
            day = record.created_at.astimezone(timezone.utc).date().isoformat()
            bucket = by_day.setdefault(day, DailyCost())
            bucket.images += record.image_count
            bucket.cost += record.estimated_cost

        average = total_cost / total_images if total_images > 0 else Decimal("0")
        return CostStats(
            total_images=total_images,
            total_cost=total_cost,
            average_cost_per_image=average,
            request_count=len(records),
            by_day=by_day,
        )

    async def get_monthly_stats(self) -> tuple[datetime, CostStats]:
        started_at = month_start(self._clock())
        return started_at, await self.get_stats(start=started_at)
