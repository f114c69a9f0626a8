import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Protocol, Sequence

from app.clients.vision import VisionAnalyzer
from app.errors import InvalidInputError
from app.models.moderation import (
    MediaAnalysis,
    ModerationCost,
    ModerationVerdict,
    RelevanceCheck,
)
from app.services.cost_ledger import CostLedger
from app.services.scoring import (
    SAFETY_THRESHOLD,
    SPAM_GATE_THRESHOLD,
    RelevanceScore,
    SafetyScore,
    likelihood_to_probability,
    score_relevance,
    score_safety,
    score_spam,
)

logger = logging.getLogger(__name__)

SPAM_WINDOW = timedelta(hours=1)

SAFETY_UNAVAILABLE_REASON = "Moderation service temporarily unavailable"
SAFETY_NO_ANNOTATION_REASON = "Unable to analyze image"
RELEVANCE_UNAVAILABLE_REASON = "Relevance check temporarily unavailable"


class RecentSubmissionCounter(Protocol):
    async def count_since(self, submitter_id: str, since: datetime) -> int:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModerationService:
    """Оркестратор модерации: безопасность, релевантность, спам и учет стоимости."""

    def __init__(
        self,
        vision: VisionAnalyzer,
        submission_counter: RecentSubmissionCounter,
        cost_ledger: CostLedger,
        safety_cost_per_image: Decimal,
        label_cost_per_image: Decimal,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.vision = vision
        self.submission_counter = submission_counter
        self.cost_ledger = cost_ledger
        self.safety_cost_per_image = safety_cost_per_image
        self.label_cost_per_image = label_cost_per_image
        self._clock = clock
        self._inflight: set[asyncio.Task] = set()

    async def analyze_safety(self, image_url: str) -> SafetyScore:
        '''
        ошибка сервиса – пропускаем (fail-open)
        пустой ответ сервиса – блокируем (fail-closed)
        '''
        try:
            annotation = await self.vision.safety_annotate(image_url)
        except Exception:
            logger.exception("Safety annotate failed image_url=%s", image_url)
            return SafetyScore(
                inappropriate_score=0.0,
                safe=True,
                reasons=[SAFETY_UNAVAILABLE_REASON],
            )

        if annotation is None:
            logger.warning("No safe search annotation returned image_url=%s", image_url)
            return SafetyScore(
                inappropriate_score=1.0,
                safe=False,
                reasons=[SAFETY_NO_ANNOTATION_REASON],
            )

        return score_safety(
            adult=likelihood_to_probability(annotation.adult),
            violence=likelihood_to_probability(annotation.violence),
            racy=likelihood_to_probability(annotation.racy),
        )

    async def analyze_relevance(self, image_url: str) -> RelevanceScore:
        """Проверка релевантности носит рекомендательный характер и при ошибке пропускает."""
        try:
            labels = await self.vision.label_detect(image_url)
        except Exception:
            logger.exception("Label detection failed image_url=%s", image_url)
            return RelevanceScore(
                relevance_score=0.5,
                is_relevant=True,
                reasons=[RELEVANCE_UNAVAILABLE_REASON],
            )
        return score_relevance(labels)

    async def check_relevance(self, image_url: str) -> RelevanceCheck:
        relevance = await self.analyze_relevance(image_url)
        return RelevanceCheck(
            is_relevant=relevance.is_relevant,
            relevance_score=relevance.relevance_score,
            detected_labels=relevance.detected_labels,
            reasons=relevance.reasons,
        )

    async def analyze_media(self, image_url: str, check_relevance: bool) -> MediaAnalysis:
        if check_relevance:
            safety, relevance = await asyncio.gather(
                self.analyze_safety(image_url),
                self.analyze_relevance(image_url),
            )
        else:
            safety = await self.analyze_safety(image_url)
            relevance = RelevanceScore(relevance_score=1.0, is_relevant=True)

        return MediaAnalysis(
            safety_score=safety.inappropriate_score,
            reasons=[*safety.reasons, *relevance.reasons],
            relevance_score=relevance.relevance_score,
            is_relevant=relevance.is_relevant,
            detected_labels=relevance.detected_labels,
        )

    async def count_recent_submissions(self, submitter_id: str) -> int:
        since = self._clock() - SPAM_WINDOW
        try:
            return await self.submission_counter.count_since(submitter_id, since)
        except Exception:
            logger.exception("Recent submission count failed submitter_id=%s", submitter_id)
            return 0

    def estimate_cost(self, image_count: int, check_relevance: bool) -> Decimal:
        per_image = self.safety_cost_per_image
        if check_relevance:
            per_image += self.label_cost_per_image
        return per_image * image_count

    async def evaluate(
        self,
        submitter_id: str,
        media_urls: Sequence[str],
        check_relevance: bool,
    ) -> ModerationVerdict:
        """
        Модерация всей заявки.

        Подсчет недавних заявок и анализ каждого изображения выполняются
        параллельно; агрегаты (max, min, AND) не зависят от порядка.
        Ошибка записи стоимости не прерывает модерацию.
        """
        if not media_urls:
            raise InvalidInputError("media_urls must not be empty")

        started = time.perf_counter()
        recent_count, *analyses = await asyncio.gather(
            self.count_recent_submissions(submitter_id),
            *(self.analyze_media(url, check_relevance) for url in media_urls),
        )

        spam = score_spam(recent_count)
        inappropriate_score = max(analysis.safety_score for analysis in analyses)
        min_relevance_score = min(analysis.relevance_score for analysis in analyses)
        all_relevant = all(analysis.is_relevant for analysis in analyses)

        collected_reasons = [reason for analysis in analyses for reason in analysis.reasons]
        collected_reasons.extend(spam.reasons)
        reasons = list(dict.fromkeys(collected_reasons))

        safe = (
            inappropriate_score < SAFETY_THRESHOLD
            and spam.spam_score < SPAM_GATE_THRESHOLD
            and (all_relevant or not check_relevance)
        )

        image_count = len(media_urls)
        estimated_cost = self.estimate_cost(image_count, check_relevance)
        try:
            await self.cost_ledger.record(
                submitter_id=submitter_id,
                image_count=image_count,
                estimated_cost=estimated_cost,
            )
        except Exception:
            logger.exception(
                "Cost recording failed submitter_id=%s images=%s cost=%s",
                submitter_id,
                image_count,
                estimated_cost,
            )

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Moderation verdict submitter_id=%s images=%s safe=%s inappropriate=%s spam=%s relevant=%s",
            submitter_id,
            image_count,
            safe,
            inappropriate_score,
            spam.spam_score,
            all_relevant,
        )

        return ModerationVerdict(
            safe=safe,
            spam_score=spam.spam_score,
            inappropriate_score=inappropriate_score,
            relevant=all_relevant,
            min_relevance_score=min_relevance_score,
            reasons=reasons,
            cost=ModerationCost(
                images_processed=image_count,
                estimated_cost=estimated_cost,
                processing_time_ms=processing_time_ms,
            ),
        )

    async def evaluate_detached(
        self,
        submitter_id: str,
        media_urls: Sequence[str],
        check_relevance: bool,
    ) -> ModerationVerdict:
        '''
        модерация продолжается даже при отмене вызывающей корутины
        (клиент отключился), чтобы стоимость была записана в журнал
        '''
        if not media_urls:
            raise InvalidInputError("media_urls must not be empty")
        task = asyncio.create_task(self.evaluate(submitter_id, media_urls, check_relevance))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)
