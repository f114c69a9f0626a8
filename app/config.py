import os
from dataclasses import dataclass
from decimal import Decimal


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    vision_api_key: str = ""
    vision_endpoint: str = "https://vision.googleapis.com/v1/images:annotate"
    vision_timeout_seconds: float = 10.0
    safety_cost_per_image: Decimal = Decimal("0.0015")
    label_cost_per_image: Decimal = Decimal("0.0015")
    monthly_alert_threshold: Decimal = Decimal("50")
    check_relevance: bool = True
    daily_submission_limit: int = 10


def load_settings() -> Settings:
    '''
    Собирает настройки из переменных окружения при старте приложения
    '''
    return Settings(
        vision_api_key=os.getenv("VISION_API_KEY", ""),
        vision_endpoint=os.getenv(
            "VISION_ENDPOINT",
            "https://vision.googleapis.com/v1/images:annotate",
        ),
        vision_timeout_seconds=float(os.getenv("VISION_TIMEOUT_SECONDS", "10")),
        safety_cost_per_image=Decimal(os.getenv("MODERATION_SAFETY_COST_PER_IMAGE", "0.0015")),
        label_cost_per_image=Decimal(os.getenv("MODERATION_LABEL_COST_PER_IMAGE", "0.0015")),
        monthly_alert_threshold=Decimal(os.getenv("MODERATION_MONTHLY_ALERT_THRESHOLD", "50")),
        check_relevance=_env_bool("MODERATION_CHECK_RELEVANCE", True),
        daily_submission_limit=int(os.getenv("RATE_LIMIT_SUBMISSIONS_DAILY", "10")),
    )
