"""Pydantic schemas for request/response validation."""

from app.schemas.risk import (
    AlertRead,
    RiskListResponse,
    RuleChangeLogRead,
    RuleRead,
    RuleUpdate,
    ScanReportRead,
)

__all__ = [
    "AlertRead",
    "RiskListResponse",
    "RuleChangeLogRead",
    "RuleRead",
    "RuleUpdate",
    "ScanReportRead",
]
