"""HTTP server for the page usage ledger."""
from fastapi import FastAPI

from config import get_settings
from src.app.core.error_handler import register_error_handlers
from .routes import (
    PlanResponse,
    QuotaResponse,
    UsageResponse,
    check_usage_quota,
    increment_usage,
    list_plans,
    read_current_usage,
    reconcile_usage,
)

settings = get_settings()
logger = settings.logger


def create_usage_app() -> FastAPI:
    """Creates and configures the FastAPI application."""
    asgi_app = FastAPI(title="Page Quota Ledger")
    register_error_handlers(asgi_app)

    asgi_app.get("/users/{user_id}/usage", response_model=UsageResponse)(read_current_usage)
    asgi_app.post("/users/{user_id}/usage/check", response_model=QuotaResponse)(check_usage_quota)
    asgi_app.post("/users/{user_id}/usage/increment", response_model=UsageResponse)(increment_usage)
    asgi_app.post("/users/{user_id}/usage/reconcile", response_model=UsageResponse)(reconcile_usage)
    asgi_app.get("/plans", response_model=list[PlanResponse])(list_plans)

    @asgi_app.get("/health", include_in_schema=False)
    def health() -> dict:
        return {"status": "ok", "environment": settings.APP_ENV}

    return asgi_app
