from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from app.clients.postgres import get_pg_connection
from app.errors import StorageUnavailableError, SubmissionNotFoundError
from app.models.submission import ModerationFlags, Submission

REVIEWABLE_STATUSES = ("pending", "flagged")

_SUBMISSION_COLUMNS = """
    id, submitter_id, status, type, title, description, media_urls, tags,
    difficulty, price_range, materials, spam_score, inappropriate_score,
    ai_generated, submitted_at, reviewed_at, reviewed_by, rejection_reason,
    approved_entry_id
"""


@dataclass(frozen=True)
class ReviewOutcome:
    """Результат попытки перевести заявку: найдена ли она и прошел ли переход."""

    found: bool
    applied: bool
    entry_id: int | None = None


@dataclass(frozen=True)
class SubmissionStorage:
    connection_provider: Callable[..., Any] = get_pg_connection

    async def create(
        self,
        submitter_id: str,
        status: str,
        content: Mapping[str, Any],
        flags: Mapping[str, Any],
    ) -> Mapping[str, Any]:
        query = f"""
            INSERT INTO submissions (
                submitter_id, status, type, title, description, media_urls, tags,
                difficulty, price_range, materials, spam_score, inappropriate_score,
                ai_generated
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING {_SUBMISSION_COLUMNS}
        """
        try:
            async with self.connection_provider() as connection:
                record = await connection.fetchrow(
                    query,
                    submitter_id,
                    status,
                    content["type"],
                    content["title"],
                    content["description"],
                    list(content["media_urls"]),
                    list(content["tags"]),
                    content["difficulty"],
                    content["price_range"],
                    list(content["materials"]),
                    flags["spam"],
                    flags["inappropriate"],
                    flags["ai_generated"],
                )
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        if record is None:
            raise StorageUnavailableError("Submission insert returned no row")
        return dict(record)

    async def get(self, submission_id: int) -> Mapping[str, Any] | None:
        query = f"""
            SELECT {_SUBMISSION_COLUMNS}
            FROM submissions
            WHERE id = $1
        """
        try:
            async with self.connection_provider() as connection:
                record = await connection.fetchrow(query, submission_id)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        if record is None:
            return None
        return dict(record)

    async def list_by_submitter(
        self,
        submitter_id: str,
        status: str | None,
        limit: int,
        cursor: int | None,
    ) -> list[Mapping[str, Any]]:
        # Keyset-пагинация по (submitted_at, id): курсор – id последней отданной заявки.
        # Неизвестный курсор игнорируется, отдается первая страница.
        query = f"""
            SELECT {_SUBMISSION_COLUMNS}
            FROM submissions
            WHERE submitter_id = $1
              AND ($2::TEXT IS NULL OR status = $2)
              AND (
                $3::BIGINT IS NULL
                OR NOT EXISTS (SELECT 1 FROM submissions AS c WHERE c.id = $3)
                OR (submitted_at, id) < (
                    SELECT c.submitted_at, c.id FROM submissions AS c WHERE c.id = $3
                )
              )
            ORDER BY submitted_at DESC, id DESC
            LIMIT $4
        """
        try:
            async with self.connection_provider() as connection:
                records = await connection.fetch(query, submitter_id, status, cursor, limit)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return [dict(record) for record in records]

    async def list_queue(self, statuses: Sequence[str], limit: int) -> list[Mapping[str, Any]]:
        query = f"""
            SELECT {_SUBMISSION_COLUMNS}
            FROM submissions
            WHERE status = ANY($1::TEXT[])
            ORDER BY submitted_at ASC, id ASC
            LIMIT $2
        """
        try:
            async with self.connection_provider() as connection:
                records = await connection.fetch(query, list(statuses), limit)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return [dict(record) for record in records]

    async def count_since(self, submitter_id: str, since: datetime) -> int:
        query = """
            SELECT COUNT(*) AS total
            FROM submissions
            WHERE submitter_id = $1 AND submitted_at > $2
        """
        try:
            async with self.connection_provider() as connection:
                total = await connection.fetchval(query, submitter_id, since)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return int(total or 0)

    async def approve(
        self,
        submission_id: int,
        reviewer_id: str,
        collection_id: str,
        trend_score: float,
    ) -> ReviewOutcome:
        lock_query = """
            SELECT id, submitter_id, status, type, title, description, media_urls,
                   tags, difficulty, price_range, materials
            FROM submissions
            WHERE id = $1
            FOR UPDATE
        """
        insert_entry_query = """
            INSERT INTO collection_entries (
                collection_id, title, description, type, media_url, thumb_url, tags,
                difficulty, price_range, materials, trend_score, supports_booking,
                source, submitter_id, curated_by
            )
            VALUES ($1, $2, $3, $4, $5, $5, $6, $7, $8, $9, $10, FALSE, 'user_submission', $11, $12)
            RETURNING id
        """
        update_query = """
            UPDATE submissions
            SET status = 'approved',
                reviewed_at = NOW(),
                reviewed_by = $2,
                approved_entry_id = $3
            WHERE id = $1
        """
        try:
            async with self.connection_provider() as connection:
                async with connection.transaction():
                    submission = await connection.fetchrow(lock_query, submission_id)
                    if submission is None:
                        return ReviewOutcome(found=False, applied=False)
                    if submission["status"] not in REVIEWABLE_STATUSES:
                        return ReviewOutcome(found=True, applied=False)
                    entry_id = await connection.fetchval(
                        insert_entry_query,
                        collection_id,
                        submission["title"],
                        submission["description"] or "",
                        submission["type"],
                        submission["media_urls"][0],
                        list(submission["tags"] or []),
                        submission["difficulty"],
                        submission["price_range"],
                        list(submission["materials"] or []),
                        trend_score,
                        submission["submitter_id"],
                        reviewer_id,
                    )
                    await connection.execute(update_query, submission_id, reviewer_id, entry_id)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return ReviewOutcome(found=True, applied=True, entry_id=int(entry_id))

    async def reject(self, submission_id: int, reviewer_id: str, reason: str) -> ReviewOutcome:
        query = """
            UPDATE submissions
            SET status = 'rejected',
                reviewed_at = NOW(),
                reviewed_by = $2,
                rejection_reason = $3
            WHERE id = $1 AND status = ANY($4::TEXT[])
            RETURNING id
        """
        return await self._transition(query, submission_id, reviewer_id, reason, list(REVIEWABLE_STATUSES))

    async def withdraw(self, submission_id: int, requester_id: str) -> ReviewOutcome:
        query = """
            UPDATE submissions
            SET status = 'withdrawn',
                reviewed_at = NOW(),
                reviewed_by = $2
            WHERE id = $1 AND submitter_id = $2 AND status = ANY($3::TEXT[])
            RETURNING id
        """
        return await self._transition(query, submission_id, requester_id, list(REVIEWABLE_STATUSES))

    async def _transition(self, query: str, submission_id: int, *args: Any) -> ReviewOutcome:
        exists_query = "SELECT id FROM submissions WHERE id = $1"
        try:
            async with self.connection_provider() as connection:
                record = await connection.fetchrow(query, submission_id, *args)
                if record is not None:
                    return ReviewOutcome(found=True, applied=True)
                existing = await connection.fetchrow(exists_query, submission_id)
        except Exception as exc:
            raise StorageUnavailableError("Storage operation failed") from exc
        return ReviewOutcome(found=existing is not None, applied=False)


def _row_to_submission(row: Mapping[str, Any]) -> Submission:
    payload = dict(row)
    payload["moderation_flags"] = ModerationFlags(
        spam=payload.pop("spam_score"),
        inappropriate=payload.pop("inappropriate_score"),
        ai_generated=payload.pop("ai_generated"),
    )
    payload["media_urls"] = list(payload.get("media_urls") or [])
    payload["tags"] = list(payload.get("tags") or [])
    payload["materials"] = list(payload.get("materials") or [])
    return Submission.model_validate(payload)


@dataclass(frozen=True)
class SubmissionRepository:
    submission_storage: SubmissionStorage = SubmissionStorage()

    async def create(
        self,
        submitter_id: str,
        status: str,
        content: Mapping[str, Any],
        flags: ModerationFlags,
    ) -> Submission:
        raw_submission = await self.submission_storage.create(
            submitter_id=submitter_id,
            status=status,
            content=content,
            flags=flags.model_dump(),
        )
        return _row_to_submission(raw_submission)

    async def get(self, submission_id: int) -> Submission | None:
        raw_submission = await self.submission_storage.get(submission_id)
        if raw_submission is None:
            return None
        return _row_to_submission(raw_submission)

    async def get_or_raise(self, submission_id: int) -> Submission:
        submission = await self.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError("Submission not found")
        return submission

    async def list_by_submitter(
        self,
        submitter_id: str,
        status: str | None = None,
        limit: int = 20,
        cursor: int | None = None,
    ) -> list[Submission]:
        rows = await self.submission_storage.list_by_submitter(
            submitter_id=submitter_id,
            status=status,
            limit=limit,
            cursor=cursor,
        )
        return [_row_to_submission(row) for row in rows]

    async def list_queue(self, statuses: Sequence[str], limit: int = 50) -> list[Submission]:
        rows = await self.submission_storage.list_queue(statuses=statuses, limit=limit)
        return [_row_to_submission(row) for row in rows]

    async def count_since(self, submitter_id: str, since: datetime) -> int:
        return await self.submission_storage.count_since(submitter_id, since)

    async def approve(
        self,
        submission_id: int,
        reviewer_id: str,
        collection_id: str,
        trend_score: float,
    ) -> ReviewOutcome:
        return await self.submission_storage.approve(
            submission_id=submission_id,
            reviewer_id=reviewer_id,
            collection_id=collection_id,
            trend_score=trend_score,
        )

    async def reject(self, submission_id: int, reviewer_id: str, reason: str) -> ReviewOutcome:
        return await self.submission_storage.reject(submission_id, reviewer_id, reason)

    async def withdraw(self, submission_id: int, requester_id: str) -> ReviewOutcome:
        return await self.submission_storage.withdraw(submission_id, requester_id)
