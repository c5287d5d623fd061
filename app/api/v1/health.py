"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class ReadinessResponse(HealthResponse):
    """Readiness response with the state of the risk engine."""

    rules_loaded: int
    ruleset_hash: str | None
    scan_in_progress: bool


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns service health status",
)
async def health_check() -> HealthResponse:
    """Check if the service is healthy.

    Returns:
        Health status response
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 503 until the risk engine has loaded its rules",
    responses={503: {"model": HealthResponse}},
)
async def readiness_check(request: Request) -> ReadinessResponse | JSONResponse:
    """Check if the service is ready to accept requests."""
    service = getattr(request.app.state, "risk_service", None)
    if service is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting"},
        )
    return ReadinessResponse(
        status="ok",
        rules_loaded=len(service.rule_store.get_all()),
        ruleset_hash=service.rule_store.ruleset_hash,
        scan_in_progress=service.scan_in_progress,
    )
