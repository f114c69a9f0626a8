import logging

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_moderation_service
from app.errors import InvalidInputError
from app.models.moderation import (
    CheckRelevanceRequest,
    MediaAnalysis,
    ModerateRequest,
    ModerateSingleRequest,
    ModerationVerdict,
    RelevanceCheck,
)
from app.services.moderation import ModerationService

# Внутренние ручки для других сервисов бэкенда, авторизацию закрывает сеть.
router = APIRouter(prefix="/internal")
logger = logging.getLogger(__name__)


@router.post("/moderate", response_model=ModerationVerdict)
async def moderate(
    payload: ModerateRequest,
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationVerdict:
    """
    Модерация набора изображений пользователя с учетом стоимости.
    """
    logger.info(
        "Internal moderation user_id=%s images=%s check_relevance=%s",
        payload.user_id,
        len(payload.media_urls),
        payload.check_relevance,
    )
    try:
        return await service.evaluate_detached(
            submitter_id=payload.user_id,
            media_urls=payload.media_urls,
            check_relevance=payload.check_relevance,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/moderate-single", response_model=MediaAnalysis)
async def moderate_single(
    payload: ModerateSingleRequest,
    service: ModerationService = Depends(get_moderation_service),
) -> MediaAnalysis:
    """
    Анализ одного изображения без записи стоимости: у запроса нет автора,
    в учет попадают только модерации заявок через /internal/moderate.
    """
    return await service.analyze_media(payload.image_url, payload.check_relevance)


@router.post("/check-relevance", response_model=RelevanceCheck)
async def check_relevance(
    payload: CheckRelevanceRequest,
    service: ModerationService = Depends(get_moderation_service),
) -> RelevanceCheck:
    """
    Проверка тематики одного изображения, стоимость не учитывается.
    """
    return await service.check_relevance(payload.image_url)
