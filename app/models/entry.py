from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EntryMetrics(BaseModel):
    likes: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)


class PublishedEntry(BaseModel):
    id: int = Field(ge=0)
    collection_id: str = Field(min_length=1)
    title: str
    description: str = ""
    type: str
    media_url: str
    thumb_url: str
    tags: list[str] = Field(default_factory=list)
    difficulty: Optional[str] = None
    price_range: Optional[str] = None
    materials: list[str] = Field(default_factory=list)
    trend_score: float = Field(ge=0, le=1)
    supports_booking: bool = False
    source: str = "user_submission"
    submitter_id: str
    curated_by: str
    metrics: EntryMetrics = Field(default_factory=EntryMetrics)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
