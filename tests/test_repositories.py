from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.errors import StorageUnavailableError, SubmissionNotFoundError
from app.models.cost import CostRecord
from app.models.entry import PublishedEntry
from app.models.submission import ModerationFlags, Submission
from app.repositories.cost_records import CostRecordRepository, CostRecordStorage
from app.repositories.entries import EntryRepository, EntryStorage
from app.repositories.submissions import SubmissionRepository, SubmissionStorage

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

SUBMISSION_ROW = {
    "id": 11,
    "submitter_id": "user-1",
    "status": "pending",
    "type": "design",
    "title": "Chrome french tips",
    "description": "",
    "media_urls": ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"],
    "tags": ["chrome"],
    "difficulty": "beginner",
    "price_range": "mid",
    "materials": [],
    "spam_score": 0.1,
    "inappropriate_score": 0.2,
    "ai_generated": False,
    "submitted_at": NOW,
    "reviewed_at": None,
    "reviewed_by": None,
    "rejection_reason": None,
    "approved_entry_id": None,
}


class DummyTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummyConnection:
    """Мок asyncpg-соединения: отдает строки по очереди и запоминает запросы."""

    def __init__(self, rows=None, values=None, records=None):
        self.rows = list(rows or [])
        self.values = list(values or [])
        self.records = records or []
        self.fetched = []
        self.executed = []

    def transaction(self):
        return DummyTransaction()

    async def fetchrow(self, query, *args):
        self.fetched.append((query, args))
        if not self.rows:
            return None
        return self.rows.pop(0)

    async def fetchval(self, query, *args):
        self.fetched.append((query, args))
        if not self.values:
            return None
        return self.values.pop(0)

    async def fetch(self, query, *args):
        self.fetched.append((query, args))
        return self.records

    async def execute(self, query, *args):
        self.executed.append((query, args))


def _provider(connection):
    @asynccontextmanager
    async def conn_stub():
        yield connection

    return conn_stub


def _broken_provider():
    @asynccontextmanager
    async def conn_stub():
        raise RuntimeError("db unavailable")
        yield

    return conn_stub


def _submission_repo(connection):
    return SubmissionRepository(submission_storage=SubmissionStorage(connection_provider=_provider(connection)))


@pytest.mark.asyncio
async def test_submission_repository_create_maps_flags():
    connection = DummyConnection(rows=[SUBMISSION_ROW])
    repo = _submission_repo(connection)

    submission = await repo.create(
        submitter_id="user-1",
        status="pending",
        content={
            "type": "design",
            "title": "Chrome french tips",
            "description": "",
            "media_urls": SUBMISSION_ROW["media_urls"],
            "tags": ["chrome"],
            "difficulty": "beginner",
            "price_range": "mid",
            "materials": [],
        },
        flags=ModerationFlags(spam=0.1, inappropriate=0.2),
    )

    assert isinstance(submission, Submission)
    assert submission.id == 11
    assert submission.moderation_flags == ModerationFlags(spam=0.1, inappropriate=0.2, ai_generated=False)
    query, args = connection.fetched[0]
    assert "INSERT INTO submissions" in query
    assert args[:2] == ("user-1", "pending")
    assert args[-3:] == (0.1, 0.2, False)


@pytest.mark.asyncio
async def test_submission_repository_get_or_raise_not_found():
    repo = _submission_repo(DummyConnection(rows=[None]))

    with pytest.raises(SubmissionNotFoundError):
        await repo.get_or_raise(404)


@pytest.mark.asyncio
async def test_submission_repository_count_since_uses_strict_lower_bound():
    connection = DummyConnection(values=[4])
    repo = _submission_repo(connection)

    count = await repo.count_since("user-1", NOW)

    assert count == 4
    query, args = connection.fetched[0]
    assert "submitted_at > $2" in query
    assert args == ("user-1", NOW)


@pytest.mark.asyncio
async def test_submission_repository_list_by_submitter_passes_cursor():
    connection = DummyConnection(records=[SUBMISSION_ROW])
    repo = _submission_repo(connection)

    submissions = await repo.list_by_submitter("user-1", status="pending", limit=21, cursor=30)

    assert [item.id for item in submissions] == [11]
    query, args = connection.fetched[0]
    assert "ORDER BY submitted_at DESC, id DESC" in query
    assert args == ("user-1", "pending", 30, 21)


@pytest.mark.asyncio
async def test_submission_repository_approve_creates_entry_and_links_it():
    locked = {key: SUBMISSION_ROW[key] for key in (
        "id", "submitter_id", "status", "type", "title", "description", "media_urls",
        "tags", "difficulty", "price_range", "materials",
    )}
    connection = DummyConnection(rows=[locked], values=[501])
    repo = _submission_repo(connection)

    outcome = await repo.approve(11, "moderator-7", "design_spotlight", 0.85)

    assert outcome.found is True
    assert outcome.applied is True
    assert outcome.entry_id == 501
    assert "FOR UPDATE" in connection.fetched[0][0]
    insert_query, insert_args = connection.fetched[1]
    assert "INSERT INTO collection_entries" in insert_query
    assert insert_args[0] == "design_spotlight"
    assert insert_args[4] == "https://cdn.example.com/a.jpg"
    assert insert_args[9] == 0.85
    update_query, update_args = connection.executed[0]
    assert "status = 'approved'" in update_query
    assert update_args == (11, "moderator-7", 501)


@pytest.mark.asyncio
async def test_submission_repository_approve_skips_reviewed_submission():
    connection = DummyConnection(rows=[{**SUBMISSION_ROW, "status": "approved"}])
    repo = _submission_repo(connection)

    outcome = await repo.approve(11, "moderator-7", "design_spotlight", 0.5)

    assert outcome.found is True
    assert outcome.applied is False
    assert len(connection.fetched) == 1
    assert connection.executed == []


@pytest.mark.asyncio
async def test_submission_repository_approve_not_found():
    repo = _submission_repo(DummyConnection(rows=[None]))

    outcome = await repo.approve(404, "moderator-7", "design_spotlight", 0.5)

    assert outcome.found is False


@pytest.mark.asyncio
async def test_submission_repository_reject_reports_existing_but_reviewed():
    # UPDATE ничего не вернул, но заявка существует
    connection = DummyConnection(rows=[None, {"id": 11}])
    repo = _submission_repo(connection)

    outcome = await repo.reject(11, "moderator-7", "Duplicate of an existing entry")

    assert outcome.found is True
    assert outcome.applied is False
    assert "status = 'rejected'" in connection.fetched[0][0]


@pytest.mark.asyncio
async def test_submission_repository_withdraw_applied():
    connection = DummyConnection(rows=[{"id": 11}])
    repo = _submission_repo(connection)

    outcome = await repo.withdraw(11, "user-1")

    assert outcome.applied is True
    query, args = connection.fetched[0]
    assert "submitter_id = $2" in query
    assert args == (11, "user-1", ["pending", "flagged"])


@pytest.mark.asyncio
async def test_submission_repository_wraps_storage_errors():
    repo = SubmissionRepository(submission_storage=SubmissionStorage(connection_provider=_broken_provider()))

    with pytest.raises(StorageUnavailableError):
        await repo.get(11)


@pytest.mark.asyncio
async def test_entry_repository_get_maps_metrics():
    row = {
        "id": 501,
        "collection_id": "design_spotlight",
        "title": "Chrome french tips",
        "description": "",
        "type": "design",
        "media_url": "https://cdn.example.com/a.jpg",
        "thumb_url": "https://cdn.example.com/a.jpg",
        "tags": ["chrome"],
        "difficulty": "beginner",
        "price_range": "mid",
        "materials": [],
        "trend_score": 0.85,
        "supports_booking": False,
        "source": "user_submission",
        "submitter_id": "user-1",
        "curated_by": "moderator-7",
        "likes": 0,
        "saves": 2,
        "shares": 0,
        "created_at": NOW,
        "updated_at": NOW,
    }
    repo = EntryRepository(entry_storage=EntryStorage(connection_provider=_provider(DummyConnection(rows=[row]))))

    entry = await repo.get(501)

    assert isinstance(entry, PublishedEntry)
    assert entry.metrics.saves == 2
    assert entry.source == "user_submission"


@pytest.mark.asyncio
async def test_cost_record_repository_insert_and_sum():
    record_row = {
        "id": 1,
        "submitter_id": "user-1",
        "image_count": 2,
        "estimated_cost": Decimal("0.006000"),
        "created_at": NOW,
    }
    connection = DummyConnection(rows=[record_row], values=[Decimal("12.5")])
    repo = CostRecordRepository(cost_record_storage=CostRecordStorage(connection_provider=_provider(connection)))

    record = await repo.insert("user-1", 2, Decimal("0.006"))
    total = await repo.sum_since(datetime(2026, 10, 1, tzinfo=timezone.utc))

    assert isinstance(record, CostRecord)
    assert record.estimated_cost == Decimal("0.006")
    assert total == Decimal("12.5")
    assert "INSERT INTO moderation_costs" in connection.fetched[0][0]
    assert "created_at >= $1" in connection.fetched[1][0]


@pytest.mark.asyncio
async def test_cost_record_repository_list_recent_caps_scan():
    connection = DummyConnection(records=[])
    repo = CostRecordRepository(cost_record_storage=CostRecordStorage(connection_provider=_provider(connection)))

    await repo.list_recent()

    query, args = connection.fetched[0]
    assert "ORDER BY created_at DESC" in query
    assert args == (None, None, 1000)


@pytest.mark.asyncio
async def test_cost_record_repository_sum_since_empty_month():
    connection = DummyConnection(values=[None])
    repo = CostRecordRepository(cost_record_storage=CostRecordStorage(connection_provider=_provider(connection)))

    total = await repo.sum_since(NOW)

    assert total == Decimal("0")


@pytest.mark.asyncio
async def test_submission_repository_list_by_submitter_ignores_unknown_cursor():
    connection = DummyConnection(records=[])
    repo = _submission_repo(connection)

    await repo.list_by_submitter("user-1", limit=21, cursor=9999)

    query, _ = connection.fetched[0]
    assert "NOT EXISTS (SELECT 1 FROM submissions AS c WHERE c.id = $3)" in query
