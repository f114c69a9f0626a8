from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MediaAnalysis(BaseModel):
    safety_score: float = Field(ge=0, le=1)
    reasons: list[str] = Field(default_factory=list)
    relevance_score: float = Field(ge=0, le=1)
    is_relevant: bool
    detected_labels: list[str] = Field(default_factory=list, max_length=10)


class RelevanceCheck(BaseModel):
    is_relevant: bool
    relevance_score: float = Field(ge=0, le=1)
    detected_labels: list[str] = Field(default_factory=list, max_length=10)
    reasons: list[str] = Field(default_factory=list)


class ModerationCost(BaseModel):
    images_processed: int = Field(ge=0)
    estimated_cost: Decimal = Field(ge=0)
    processing_time_ms: int = Field(ge=0)


class ModerationVerdict(BaseModel):
    safe: bool
    spam_score: float = Field(ge=0, le=1)
    inappropriate_score: float = Field(ge=0, le=1)
    relevant: bool
    min_relevance_score: float = Field(ge=0, le=1)
    reasons: list[str] = Field(default_factory=list)
    cost: ModerationCost


class ModerateRequest(BaseModel):
    # внутренние клиенты присылают camelCase (userId, mediaUrls)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(min_length=1)
    media_urls: list[str] = Field(min_length=1, max_length=10)
    check_relevance: bool = False


class ModerateSingleRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_url: str = Field(min_length=1)
    check_relevance: bool = False


class CheckRelevanceRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_url: str = Field(min_length=1)
