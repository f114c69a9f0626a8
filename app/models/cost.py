from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CostRecord(BaseModel):
    id: int = Field(ge=0)
    submitter_id: str
    image_count: int = Field(ge=0)
    estimated_cost: Decimal = Field(ge=0)
    created_at: datetime


class DailyCost(BaseModel):
    images: int = Field(default=0, ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)


class CostStats(BaseModel):
    total_images: int = Field(ge=0)
    total_cost: Decimal = Field(ge=0)
    average_cost_per_image: Decimal = Field(ge=0)
    request_count: int = Field(ge=0)
    by_day: dict[str, DailyCost] = Field(default_factory=dict)


class StatsPeriod(BaseModel):
    start: str
    end: str


class CostStatsResponse(BaseModel):
    stats: CostStats
    period: StatsPeriod


class MonthlyCostResponse(BaseModel):
    month: str
    total_cost: Decimal
    total_images: int
    request_count: int
    average_cost_per_image: Decimal
    cost_per_request: Decimal
    alert_threshold: Decimal
    threshold_exceeded: bool
    started_at: Optional[datetime] = None
