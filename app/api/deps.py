"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from app.services.risk_alerts import RiskAlertService


def get_risk_service(request: Request) -> RiskAlertService:
    """Return the process-wide risk alert service.

    Raises:
        HTTPException: 503 if startup has not wired the service
    """
    service = getattr(request.app.state, "risk_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Risk engine is not initialised",
        )
    return service


RiskService = Annotated[RiskAlertService, Depends(get_risk_service)]
