"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from app.api.v1 import health, risks

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Risk alerts, rules and rule change log
api_router.include_router(
    risks.router,
    prefix="/risks",
    tags=["risks"],
)
