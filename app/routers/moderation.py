import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.dependencies import Identity, get_submission_service, require_reviewer
from app.errors import (
    EntryNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    StorageUnavailableError,
    SubmissionNotFoundError,
)
from app.models.entry import PublishedEntry
from app.models.submission import ApprovalRequest, RejectionRequest, Submission
from app.services.submissions import SubmissionService

router = APIRouter(prefix="/explore")
logger = logging.getLogger(__name__)


@router.get("/moderation/queue")
async def moderation_queue(
    filter: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    _reviewer: Identity = Depends(require_reviewer),
    service: SubmissionService = Depends(get_submission_service),
) -> dict[str, list[Submission]]:
    '''
    Ручка для очереди модерации (старые заявки сначала)
    '''
    try:
        queue = await service.queue(status_filter=filter, limit=limit)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("Get moderation queue failed")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    return {"queue": queue}


@router.post("/moderation/{submission_id}/approve")
async def approve_submission(
    payload: ApprovalRequest,
    submission_id: int = Path(ge=0),
    reviewer: Identity = Depends(require_reviewer),
    service: SubmissionService = Depends(get_submission_service),
) -> dict:
    '''
    Ручка для одобрения заявки и публикации в коллекцию
    '''
    try:
        entry_id = await service.approve(
            submission_id=submission_id,
            reviewer_id=reviewer.user_id,
            collection_id=payload.collection_id,
            trend_score=payload.trend_score,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Submission not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("Approve submission failed submission_id=%s", submission_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {"entry_id": entry_id, "approved": True}


@router.post("/moderation/{submission_id}/reject")
async def reject_submission(
    payload: RejectionRequest,
    submission_id: int = Path(ge=0),
    reviewer: Identity = Depends(require_reviewer),
    service: SubmissionService = Depends(get_submission_service),
) -> dict:
    '''
    Ручка для отклонения заявки с указанием причины
    '''
    try:
        await service.reject(submission_id, reviewer.user_id, payload.reason)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Submission not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageUnavailableError as exc:
        logger.exception("Reject submission failed submission_id=%s", submission_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc

    return {"submission_id": submission_id, "rejected": True}


@router.get("/entries/{entry_id}", response_model=PublishedEntry)
async def get_entry(
    entry_id: int = Path(ge=0),
    service: SubmissionService = Depends(get_submission_service),
) -> PublishedEntry:
    try:
        return await service.get_entry(entry_id)
    except EntryNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Entry not found") from exc
    except StorageUnavailableError as exc:
        logger.exception("Get entry failed entry_id=%s", entry_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc
