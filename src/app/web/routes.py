"""HTTP handlers for the page usage ledger."""
from typing import List, Optional

from fastapi import Depends
from pydantic import BaseModel, Field

from config import get_settings
from models.user_usage import UserUsage
from services.usage_service import UsageService, get_usage_service

settings = get_settings()
logger = settings.logger


class PagesRequest(BaseModel):
    pages: int = Field(1, ge=1)


class UsageResponse(BaseModel):
    id: str
    user_id: str
    billing_period_start: str
    billing_period_end: str
    pages_processed: int
    pages_limit: int
    remaining: int

    @classmethod
    def from_usage(cls, usage: UserUsage) -> "UsageResponse":
        return cls(
            id=usage.id,
            user_id=usage.user_id,
            billing_period_start=usage.billing_period_start.isoformat(),
            billing_period_end=usage.billing_period_end.isoformat(),
            pages_processed=usage.pages_processed,
            pages_limit=usage.pages_limit,
            remaining=usage.remaining_pages,
        )


class QuotaResponse(BaseModel):
    has_quota: bool
    remaining: int
    bypassed: bool
    usage: Optional[UsageResponse] = None


class PlanResponse(BaseModel):
    plan_id: str
    name: str
    price_monthly: float
    page_quota: int
    batch_processing_limit: int


def usage_service_dependency() -> UsageService:
    """Resolves the shared usage service; overridden in tests."""
    return get_usage_service()


def read_current_usage(
    user_id: str, service: UsageService = Depends(usage_service_dependency)
) -> UsageResponse:
    """Current usage record of the user."""
    return UsageResponse.from_usage(service.get_current(user_id))


def check_usage_quota(
    user_id: str,
    body: PagesRequest,
    service: UsageService = Depends(usage_service_dependency),
) -> QuotaResponse:
    """Whether the user may process ``pages`` more pages."""
    result = service.check_quota(user_id, body.pages)
    return QuotaResponse(
        has_quota=result.has_quota,
        remaining=result.remaining,
        bypassed=result.bypassed,
        usage=UsageResponse.from_usage(result.usage) if result.usage is not None else None,
    )


def increment_usage(
    user_id: str,
    body: PagesRequest,
    service: UsageService = Depends(usage_service_dependency),
) -> UsageResponse:
    """Records ``pages`` processed pages."""
    return UsageResponse.from_usage(service.increment(user_id, body.pages))


def reconcile_usage(
    user_id: str, service: UsageService = Depends(usage_service_dependency)
) -> UsageResponse:
    """Re-aligns the usage record after a subscription change."""
    logger.info("Reconciliation requested for user %s", user_id)
    return UsageResponse.from_usage(service.reconcile(user_id))


def list_plans(service: UsageService = Depends(usage_service_dependency)) -> List[PlanResponse]:
    return [
        PlanResponse(
            plan_id=plan.plan_id,
            name=plan.name,
            price_monthly=plan.price_monthly,
            page_quota=plan.page_quota,
            batch_processing_limit=plan.batch_processing_limit,
        )
        for plan in service.catalog.plans()
    ]
