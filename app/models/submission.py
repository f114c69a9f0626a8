from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl

SubmissionStatus = Literal["pending", "flagged", "approved", "rejected", "withdrawn"]
SubmissionType = Literal["design", "technique", "product", "tutorial", "tip"]
Difficulty = Literal["beginner", "intermediate", "advanced"]
PriceRange = Literal["budget", "mid", "premium"]


class SubmissionCreate(BaseModel):
    type: SubmissionType
    title: str = Field(min_length=3, max_length=120)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    media_urls: list[HttpUrl] = Field(min_length=1, max_length=10)
    tags: list[str] = Field(default_factory=list, max_length=20)
    difficulty: Optional[Difficulty] = None
    price_range: Optional[PriceRange] = None
    materials: Optional[list[str]] = Field(default=None, max_length=30)


class ModerationFlags(BaseModel):
    spam: float = Field(ge=0, le=1)
    inappropriate: float = Field(ge=0, le=1)
    ai_generated: bool = False


class Submission(BaseModel):
    id: int = Field(ge=0)
    submitter_id: str = Field(min_length=1)
    status: SubmissionStatus
    type: str
    title: str
    description: str = ""
    media_urls: list[str]
    tags: list[str] = Field(default_factory=list)
    difficulty: str
    price_range: str
    materials: list[str] = Field(default_factory=list)
    moderation_flags: ModerationFlags
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    approved_entry_id: Optional[int] = None


class SubmissionCreated(BaseModel):
    submission_id: int = Field(ge=0)
    status: SubmissionStatus
    estimated_review_time: str = "24-48 hours"


class SubmissionPage(BaseModel):
    submissions: list[Submission]
    next_cursor: Optional[int] = None


class ApprovalRequest(BaseModel):
    collection_id: str = Field(min_length=1)
    trend_score: float = Field(default=0.5, ge=0, le=1)


class RejectionRequest(BaseModel):
    reason: str = Field(min_length=10, max_length=500)
