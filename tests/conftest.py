from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.clients.vision import LabelAnnotation, SafeSearchAnnotation
from app.errors import SubmissionNotFoundError, VisionServiceError
from app.models.cost import CostRecord
from app.models.entry import PublishedEntry
from app.models.submission import Submission
from app.repositories.submissions import REVIEWABLE_STATUSES, ReviewOutcome
from app.services.cost_ledger import CostLedger
from app.services.moderation import ModerationService
from app.services.submissions import SubmissionService

SAFE_ANNOTATION = SafeSearchAnnotation(adult="VERY_UNLIKELY", violence="VERY_UNLIKELY", racy="UNLIKELY")
NAIL_LABELS = [LabelAnnotation(description="Nail art", score=0.92), LabelAnnotation(description="Finger", score=0.8)]


class FakeVision:
    """Ответы Vision по URL; исключение в таблице поднимается при вызове."""

    def __init__(self, safety=None, labels=None):
        self.safety = dict(safety or {})
        self.labels = dict(labels or {})
        self.safety_calls = []
        self.label_calls = []

    async def safety_annotate(self, image_url):
        self.safety_calls.append(image_url)
        result = self.safety.get(image_url, SAFE_ANNOTATION)
        if isinstance(result, Exception):
            raise result
        return result

    async def label_detect(self, image_url):
        self.label_calls.append(image_url)
        result = self.labels.get(image_url, NAIL_LABELS)
        if isinstance(result, Exception):
            raise result
        return result


class InMemorySubmissionRepository:
    def __init__(self, entry_repo):
        self.entry_repo = entry_repo
        self.rows: dict[int, Submission] = {}
        self.recent_count = 0
        self.count_error: Exception | None = None
        self._next_id = 1

    async def create(self, submitter_id, status, content, flags):
        submission = Submission(
            id=self._next_id,
            submitter_id=submitter_id,
            status=status,
            moderation_flags=flags,
            submitted_at=datetime.now(timezone.utc),
            **content,
        )
        self.rows[submission.id] = submission
        self._next_id += 1
        return submission

    async def get(self, submission_id):
        return self.rows.get(submission_id)

    async def get_or_raise(self, submission_id):
        submission = await self.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError("Submission not found")
        return submission

    async def list_by_submitter(self, submitter_id, status=None, limit=20, cursor=None):
        rows = [row for row in self.rows.values() if row.submitter_id == submitter_id]
        if status is not None:
            rows = [row for row in rows if row.status == status]
        rows.sort(key=lambda row: row.id, reverse=True)
        if cursor is not None and cursor in self.rows:
            rows = [row for row in rows if row.id < cursor]
        return rows[:limit]

    async def list_queue(self, statuses, limit=50):
        rows = [row for row in self.rows.values() if row.status in statuses]
        rows.sort(key=lambda row: row.id)
        return rows[:limit]

    async def count_since(self, submitter_id, since):
        if self.count_error is not None:
            raise self.count_error
        return self.recent_count

    async def approve(self, submission_id, reviewer_id, collection_id, trend_score):
        submission = self.rows.get(submission_id)
        if submission is None:
            return ReviewOutcome(found=False, applied=False)
        if submission.status not in REVIEWABLE_STATUSES:
            return ReviewOutcome(found=True, applied=False)
        entry = self.entry_repo.publish(submission, reviewer_id, collection_id, trend_score)
        self.rows[submission_id] = submission.model_copy(
            update={
                "status": "approved",
                "reviewed_at": datetime.now(timezone.utc),
                "reviewed_by": reviewer_id,
                "approved_entry_id": entry.id,
            }
        )
        return ReviewOutcome(found=True, applied=True, entry_id=entry.id)

    async def reject(self, submission_id, reviewer_id, reason):
        submission = self.rows.get(submission_id)
        if submission is None:
            return ReviewOutcome(found=False, applied=False)
        if submission.status not in REVIEWABLE_STATUSES:
            return ReviewOutcome(found=True, applied=False)
        self.rows[submission_id] = submission.model_copy(
            update={
                "status": "rejected",
                "reviewed_at": datetime.now(timezone.utc),
                "reviewed_by": reviewer_id,
                "rejection_reason": reason,
            }
        )
        return ReviewOutcome(found=True, applied=True)

    async def withdraw(self, submission_id, requester_id):
        submission = self.rows.get(submission_id)
        if submission is None:
            return ReviewOutcome(found=False, applied=False)
        if submission.submitter_id != requester_id or submission.status not in REVIEWABLE_STATUSES:
            return ReviewOutcome(found=True, applied=False)
        self.rows[submission_id] = submission.model_copy(
            update={
                "status": "withdrawn",
                "reviewed_at": datetime.now(timezone.utc),
                "reviewed_by": requester_id,
            }
        )
        return ReviewOutcome(found=True, applied=True)


class InMemoryEntryRepository:
    def __init__(self):
        self.rows: dict[int, PublishedEntry] = {}

    def publish(self, submission, reviewer_id, collection_id, trend_score):
        entry = PublishedEntry(
            id=len(self.rows) + 100,
            collection_id=collection_id,
            title=submission.title,
            description=submission.description,
            type=submission.type,
            media_url=submission.media_urls[0],
            thumb_url=submission.media_urls[0],
            tags=submission.tags,
            difficulty=submission.difficulty,
            price_range=submission.price_range,
            materials=submission.materials,
            trend_score=trend_score,
            submitter_id=submission.submitter_id,
            curated_by=reviewer_id,
        )
        self.rows[entry.id] = entry
        return entry

    async def get(self, entry_id):
        return self.rows.get(entry_id)


class InMemoryCostRepository:
    def __init__(self):
        self.records: list[CostRecord] = []
        self.insert_error: Exception | None = None

    async def insert(self, submitter_id, image_count, estimated_cost):
        if self.insert_error is not None:
            raise self.insert_error
        record = CostRecord(
            id=len(self.records) + 1,
            submitter_id=submitter_id,
            image_count=image_count,
            estimated_cost=estimated_cost,
            created_at=datetime.now(timezone.utc),
        )
        self.records.append(record)
        return record

    async def sum_since(self, since):
        return sum(
            (record.estimated_cost for record in self.records if record.created_at >= since),
            Decimal("0"),
        )

    async def list_recent(self, start=None, end=None, limit=1000):
        rows = [
            record
            for record in self.records
            if (start is None or record.created_at >= start) and (end is None or record.created_at <= end)
        ]
        rows.sort(key=lambda record: record.created_at, reverse=True)
        return rows[:limit]


class RecordingAlertPublisher:
    def __init__(self):
        self.alerts = []

    async def send_cost_alert(self, monthly_total, threshold):
        self.alerts.append((monthly_total, threshold))


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def entry_repo():
    return InMemoryEntryRepository()


@pytest.fixture
def submission_repo(entry_repo):
    return InMemorySubmissionRepository(entry_repo)


@pytest.fixture
def cost_repo():
    return InMemoryCostRepository()


@pytest.fixture
def alert_publisher():
    return RecordingAlertPublisher()


@pytest.fixture
def cost_ledger(cost_repo, alert_publisher):
    return CostLedger(cost_repo=cost_repo, alert_threshold=Decimal("50"), alert_publisher=alert_publisher)


@pytest.fixture
def moderation_service(vision, submission_repo, cost_ledger):
    return ModerationService(
        vision=vision,
        submission_counter=submission_repo,
        cost_ledger=cost_ledger,
        safety_cost_per_image=Decimal("0.0015"),
        label_cost_per_image=Decimal("0.0015"),
    )


@pytest.fixture
def submission_service(submission_repo, entry_repo, moderation_service):
    return SubmissionService(
        submission_repo=submission_repo,
        entry_repo=entry_repo,
        moderation=moderation_service,
        check_relevance=True,
    )


@pytest.fixture
def vision_unavailable():
    return VisionServiceError("Vision request failed")
