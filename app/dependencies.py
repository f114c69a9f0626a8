from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from app.config import Settings
from app.repositories.submission_quota import SubmissionQuotaRedisStorage
from app.services.cost_ledger import CostLedger
from app.services.moderation import ModerationService
from app.services.submissions import SubmissionService

REVIEWER_ROLES = frozenset({"moderator", "admin"})


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str = "user"

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    '''
    токен проверяет шлюз, сюда приходят уже проверенные id и роль
    '''
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Identity(user_id=x_user_id, role=(x_user_role or "user").lower())


def require_reviewer(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_reviewer:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return identity


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_submission_service(request: Request) -> SubmissionService:
    return request.app.state.submission_service


def get_moderation_service(request: Request) -> ModerationService:
    return request.app.state.moderation_service


def get_cost_ledger(request: Request) -> CostLedger:
    return request.app.state.cost_ledger


def get_quota_storage(request: Request) -> SubmissionQuotaRedisStorage:
    return request.app.state.quota_storage
