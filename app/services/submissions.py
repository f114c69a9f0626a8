import logging
from typing import Any

from app.errors import (
    EntryNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    PermissionDeniedError,
    SubmissionNotFoundError,
)
from app.models.entry import PublishedEntry
from app.models.moderation import ModerationVerdict
from app.models.submission import (
    ModerationFlags,
    Submission,
    SubmissionCreate,
    SubmissionPage,
)
from app.repositories.entries import EntryRepository
from app.repositories.submissions import REVIEWABLE_STATUSES, SubmissionRepository
from app.services.moderation import ModerationService

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"approved", "rejected", "withdrawn"})
SUBMISSION_STATUSES = frozenset({*REVIEWABLE_STATUSES, *TERMINAL_STATUSES})
REJECTION_REASON_MAX_LENGTH = 500


def initial_status(verdict: ModerationVerdict) -> str:
    '''
    безопасная заявка уходит в очередь как pending, остальные – flagged
    '''
    return "pending" if verdict.safe else "flagged"


def build_content(payload: SubmissionCreate) -> dict[str, Any]:
    return {
        "type": payload.type,
        "title": payload.title,
        "description": payload.description or "",
        "media_urls": [str(url) for url in payload.media_urls],
        "tags": [tag.lower() for tag in payload.tags],
        "difficulty": payload.difficulty or "beginner",
        "price_range": payload.price_range or "mid",
        "materials": list(payload.materials or []),
    }


class SubmissionService:
    """Жизненный цикл заявки: создание по вердикту модерации и решения модератора."""

    def __init__(
        self,
        submission_repo: SubmissionRepository,
        entry_repo: EntryRepository,
        moderation: ModerationService,
        check_relevance: bool = True,
    ) -> None:
        self.submission_repo = submission_repo
        self.entry_repo = entry_repo
        self.moderation = moderation
        self.check_relevance = check_relevance

    async def create(self, submitter_id: str, payload: SubmissionCreate) -> Submission:
        content = build_content(payload)
        verdict = await self.moderation.evaluate_detached(
            submitter_id=submitter_id,
            media_urls=content["media_urls"],
            check_relevance=self.check_relevance,
        )
        status = initial_status(verdict)

        submission = await self.submission_repo.create(
            submitter_id=submitter_id,
            status=status,
            content=content,
            flags=ModerationFlags(
                spam=verdict.spam_score,
                inappropriate=verdict.inappropriate_score,
                ai_generated=False,
            ),
        )

        logger.info(
            "Submission created submission_id=%s submitter_id=%s status=%s reasons=%s",
            submission.id,
            submitter_id,
            status,
            verdict.reasons,
        )
        return submission

    async def list_mine(
        self,
        submitter_id: str,
        status: str | None = None,
        limit: int = 20,
        cursor: int | None = None,
    ) -> SubmissionPage:
        if status is not None and status not in SUBMISSION_STATUSES:
            raise InvalidInputError(f"Unknown submission status: {status}")
        submissions = await self.submission_repo.list_by_submitter(
            submitter_id=submitter_id,
            status=status,
            limit=limit + 1,
            cursor=cursor,
        )
        page = submissions[:limit]
        has_more = len(submissions) > limit
        return SubmissionPage(
            submissions=page,
            next_cursor=page[-1].id if has_more and page else None,
        )

    async def queue(self, status_filter: str | None = None, limit: int = 50) -> list[Submission]:
        if status_filter is None:
            statuses = list(REVIEWABLE_STATUSES)
        elif status_filter in SUBMISSION_STATUSES:
            statuses = [status_filter]
        else:
            raise InvalidInputError(f"Unknown submission status: {status_filter}")
        return await self.submission_repo.list_queue(statuses=statuses, limit=limit)

    async def approve(
        self,
        submission_id: int,
        reviewer_id: str,
        collection_id: str,
        trend_score: float = 0.5,
    ) -> int:
        """
        Публикует заявку в коллекцию и возвращает id созданной записи.
        Повторное одобрение не создает вторую запись, а падает с InvalidTransitionError.
        """
        if not collection_id:
            raise InvalidInputError("collection_id must not be empty")
        if not 0 <= trend_score <= 1:
            raise InvalidInputError("trend_score must be within [0, 1]")

        outcome = await self.submission_repo.approve(
            submission_id=submission_id,
            reviewer_id=reviewer_id,
            collection_id=collection_id,
            trend_score=trend_score,
        )
        if not outcome.found:
            raise SubmissionNotFoundError("Submission not found")
        if not outcome.applied or outcome.entry_id is None:
            raise InvalidTransitionError("Submission is already reviewed")

        logger.info(
            "Submission approved submission_id=%s entry_id=%s reviewer_id=%s collection_id=%s",
            submission_id,
            outcome.entry_id,
            reviewer_id,
            collection_id,
        )
        return outcome.entry_id

    async def reject(self, submission_id: int, reviewer_id: str, reason: str) -> None:
        reason = reason.strip()
        if not reason:
            raise InvalidInputError("Rejection reason must not be empty")
        if len(reason) > REJECTION_REASON_MAX_LENGTH:
            raise InvalidInputError("Rejection reason is too long")

        outcome = await self.submission_repo.reject(submission_id, reviewer_id, reason)
        if not outcome.found:
            raise SubmissionNotFoundError("Submission not found")
        if not outcome.applied:
            raise InvalidTransitionError("Submission is already reviewed")

        logger.info("Submission rejected submission_id=%s reason=%s", submission_id, reason)

    async def withdraw(self, submission_id: int, requester_id: str) -> None:
        '''
        отозвать может только автор и только пока заявка не в терминальном статусе
        '''
        submission = await self.submission_repo.get_or_raise(submission_id)
        if submission.submitter_id != requester_id:
            raise PermissionDeniedError("Submission is not owned by requester")
        if submission.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Submission is already {submission.status}")

        outcome = await self.submission_repo.withdraw(submission_id, requester_id)
        if not outcome.applied:
            raise InvalidTransitionError("Submission is already reviewed")

        logger.info("Submission withdrawn submission_id=%s submitter_id=%s", submission_id, requester_id)

    async def get_entry(self, entry_id: int) -> PublishedEntry:
        entry = await self.entry_repo.get(entry_id)
        if entry is None:
            raise EntryNotFoundError("Entry not found")
        return entry
