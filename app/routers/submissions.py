import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.config import Settings
from app.dependencies import (
    Identity,
    get_identity,
    get_quota_storage,
    get_settings,
    get_submission_service,
)
from app.errors import (
    InvalidInputError,
    InvalidTransitionError,
    PermissionDeniedError,
    StorageUnavailableError,
    SubmissionNotFoundError,
)
from app.models.submission import SubmissionCreate, SubmissionCreated, SubmissionPage
from app.repositories.submission_quota import SubmissionQuotaRedisStorage
from app.services.submissions import SubmissionService

router = APIRouter(prefix="/explore")
logger = logging.getLogger(__name__)


@router.post("/submissions", response_model=SubmissionCreated, status_code=201)
async def create_submission(
    payload: SubmissionCreate,
    identity: Identity = Depends(get_identity),
    settings: Settings = Depends(get_settings),
    quota_storage: SubmissionQuotaRedisStorage = Depends(get_quota_storage),
    service: SubmissionService = Depends(get_submission_service),
) -> dict:
    '''
    Ручка для подачи заявки: модерация и сохранение в pending/flagged
    '''
    await _enforce_daily_quota(identity.user_id, settings.daily_submission_limit, quota_storage)

    try:
        submission = await service.create(identity.user_id, payload)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("Create submission failed submitter_id=%s", identity.user_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {
        "submission_id": submission.id,
        "status": submission.status,
        "estimated_review_time": "24-48 hours",
    }


@router.get("/submissions/mine", response_model=SubmissionPage)
async def my_submissions(
    status: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    cursor: int | None = Query(default=None, ge=0),
    identity: Identity = Depends(get_identity),
    service: SubmissionService = Depends(get_submission_service),
) -> SubmissionPage:
    '''
    Ручка для списка своих заявок (новые сначала, курсорная пагинация)
    '''
    try:
        return await service.list_mine(identity.user_id, status=status, limit=limit, cursor=cursor)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("List submissions failed submitter_id=%s", identity.user_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.post("/submissions/{submission_id}/withdraw")
async def withdraw_submission(
    submission_id: int = Path(ge=0),
    identity: Identity = Depends(get_identity),
    service: SubmissionService = Depends(get_submission_service),
) -> dict:
    '''
    Ручка для отзыва заявки автором
    '''
    try:
        await service.withdraw(submission_id, identity.user_id)
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Submission not found") from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail="Submission is not owned by user") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("Withdraw submission failed submission_id=%s", submission_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {"submission_id": submission_id, "withdrawn": True}


async def _enforce_daily_quota(
    submitter_id: str,
    limit: int,
    quota_storage: SubmissionQuotaRedisStorage,
) -> None:
    """Проверяет дневной лимит заявок; недоступность Redis не блокирует подачу."""
    try:
        decision = await quota_storage.consume(submitter_id, limit)
    except Exception:
        logger.exception("Submission quota check failed submitter_id=%s", submitter_id)
        return

    if not decision.allowed:
        logger.info("Daily submission limit reached submitter_id=%s used=%s", submitter_id, decision.used)
        raise HTTPException(
            status_code=429,
            detail="Daily submission limit reached",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )
