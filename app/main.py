from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import httpx
import uvicorn

from app.clients.kafka import KafkaProducerClient
from app.clients.vision import VisionClient
from app.config import Settings, load_settings
from app.repositories.cost_records import CostRecordRepository
from app.repositories.entries import EntryRepository
from app.repositories.submission_quota import SubmissionQuotaRedisStorage
from app.repositories.submissions import SubmissionRepository
from app.routers import admin, internal, moderation, submissions
from app.services.cost_ledger import CostLedger
from app.services.moderation import ModerationService
from app.services.submissions import SubmissionService

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    '''
    Явная сборка клиентов и сервисов при старте приложения
    '''
    submission_repo = SubmissionRepository()
    cost_ledger = CostLedger(
        cost_repo=CostRecordRepository(),
        alert_threshold=settings.monthly_alert_threshold,
        alert_publisher=KafkaProducerClient(),
    )
    moderation_service = ModerationService(
        vision=VisionClient(
            http_client=http_client,
            api_key=settings.vision_api_key,
            endpoint=settings.vision_endpoint,
        ),
        submission_counter=submission_repo,
        cost_ledger=cost_ledger,
        safety_cost_per_image=settings.safety_cost_per_image,
        label_cost_per_image=settings.label_cost_per_image,
    )

    app.state.settings = settings
    app.state.cost_ledger = cost_ledger
    app.state.moderation_service = moderation_service
    app.state.quota_storage = SubmissionQuotaRedisStorage()
    app.state.submission_service = SubmissionService(
        submission_repo=submission_repo,
        entry_repo=EntryRepository(),
        moderation=moderation_service,
        check_relevance=settings.check_relevance,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    async with httpx.AsyncClient(timeout=settings.vision_timeout_seconds) as http_client:
        build_services(app, settings, http_client)
        logger.info(
            "Explore moderation service started check_relevance=%s alert_threshold=%s",
            settings.check_relevance,
            settings.monthly_alert_threshold,
        )
        yield


logging.basicConfig(level=logging.INFO)

app = FastAPI(lifespan=lifespan)

app.include_router(submissions.router)
app.include_router(moderation.router)
app.include_router(admin.router)
app.include_router(internal.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


if __name__ == '__main__':
    uvicorn.run(app, host='0.0.0.0', port=8003)
