import logging
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import Identity, get_cost_ledger, require_reviewer
from app.errors import StorageUnavailableError
from app.models.cost import CostStatsResponse, MonthlyCostResponse
from app.services.cost_ledger import CostLedger

router = APIRouter(prefix="/admin")
logger = logging.getLogger(__name__)


@router.get("/moderation/stats", response_model=CostStatsResponse)
async def moderation_stats(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _reviewer: Identity = Depends(require_reviewer),
    ledger: CostLedger = Depends(get_cost_ledger),
) -> dict:
    """
    Статистика использования Vision API за период (по последним 1000 запросам).
    """
    start_date = _as_utc(start_date)
    end_date = _as_utc(end_date)
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    try:
        stats = await ledger.get_stats(start=start_date, end=end_date)
    except StorageUnavailableError as exc:
        logger.exception("Fetch moderation stats failed")
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {
        "stats": stats,
        "period": {
            "start": start_date.isoformat() if start_date else "all time",
            "end": end_date.isoformat() if end_date else "now",
        },
    }


@router.get("/moderation/monthly-cost", response_model=MonthlyCostResponse)
async def monthly_cost(
    _reviewer: Identity = Depends(require_reviewer),
    ledger: CostLedger = Depends(get_cost_ledger),
) -> dict:
    """
    Стоимость Vision API за текущий календарный месяц (UTC).
    """
    try:
        started_at, stats = await ledger.get_monthly_stats()
    except StorageUnavailableError as exc:
        logger.exception("Fetch monthly cost failed")
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    cost_per_request = stats.total_cost / stats.request_count if stats.request_count else Decimal("0")
    return {
        "month": started_at.strftime("%Y-%m"),
        "total_cost": stats.total_cost,
        "total_images": stats.total_images,
        "request_count": stats.request_count,
        "average_cost_per_image": stats.average_cost_per_image,
        "cost_per_request": cost_per_request,
        "alert_threshold": ledger.alert_threshold,
        "threshold_exceeded": stats.total_cost > ledger.alert_threshold,
        "started_at": started_at,
    }


def _as_utc(value: datetime | None) -> datetime | None:
    # даты без зоны считаются UTC, как и месячные границы в учете стоимости
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
