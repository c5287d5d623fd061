"""Risk alert and risk rule endpoints.

The rule change log is READ-ONLY through the API. Entries are written only
by the rule store when a rule update succeeds.
"""

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import RiskService
from app.rules.models import (
    AlertFilters,
    ChangeAction,
    RiskLevel,
    RuleChangeLogFilter,
    RuleOverrides,
)
from app.rules.validation import RuleValidationError
from app.schemas.risk import (
    AlertRead,
    RiskListResponse,
    RuleChangeLogRead,
    RuleRead,
    RuleUpdate,
    ScanReportRead,
)
from app.services.risk_alerts import ScanStatus
from app.services.rule_store import UnknownRuleKeyError

router = APIRouter()


@router.get(
    "",
    response_model=RiskListResponse,
    status_code=status.HTTP_200_OK,
    summary="List risk alerts",
    description="Evaluate the task table against the risk rules (read-only, never notifies)",
)
async def list_risks(
    service: RiskService,
    project: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    assignee: str | None = None,
    risk_level: RiskLevel | None = None,
    rule_key: str | None = None,
    threshold_days: int | None = None,
    progress_threshold: int | None = None,
    include_milestones: bool | None = None,
) -> RiskListResponse:
    """Evaluate current risk alerts.

    Filters narrow the displayed alerts only. Threshold overrides are
    what-if values applied to this request and are never stored.

    Args:
        service: Risk alert service
        project: Exact project name
        status_filter: Exact task status (query name ``status``)
        assignee: Case-insensitive assignee substring
        risk_level: Derived severity
        rule_key: Only alerts matched by this rule
        threshold_days: Override for deadline rules
        progress_threshold: Override for deadline rules
        include_milestones: Override for deadline rules

    Returns:
        Alerts sorted by days left
    """
    filters = AlertFilters(
        project=project,
        status=status_filter,
        assignee=assignee,
        risk_level=risk_level,
        rule_key=rule_key,
    )
    overrides = RuleOverrides(
        threshold_days=threshold_days,
        progress_threshold=progress_threshold,
        include_milestones=include_milestones,
    )

    try:
        listing = await service.list_alerts(filters, overrides)
    except RuleValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    return RiskListResponse(
        generated_at=listing.generated_at,
        evaluation_date=listing.evaluation_date,
        snapshot_available=listing.snapshot_available,
        rules=[RuleRead.from_rule(rule) for rule in listing.rules],
        count=len(listing.items),
        items=[AlertRead.from_alert(item) for item in listing.items],
    )


@router.get(
    "/rules",
    response_model=list[RuleRead],
    status_code=status.HTTP_200_OK,
    summary="List risk rules",
)
async def list_rules(service: RiskService) -> list[RuleRead]:
    """Return every configured risk rule."""
    return [RuleRead.from_rule(rule) for rule in service.rule_store.get_all()]


@router.put(
    "/rules/{key}",
    response_model=RuleRead,
    status_code=status.HTTP_200_OK,
    summary="Update a risk rule",
    description="Partially update one rule; each changed field is audited",
)
async def update_rule(key: str, body: RuleUpdate, service: RiskService) -> RuleRead:
    """Apply a validated partial update to one rule.

    Raises:
        HTTPException: 404 for unknown keys, 422 for invalid values
    """
    try:
        rule = await service.rule_store.update(key, body.model_dump(exclude_unset=True))
    except UnknownRuleKeyError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RuleValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    return RuleRead.from_rule(rule)


@router.get(
    "/rules/logs",
    response_model=list[RuleChangeLogRead],
    status_code=status.HTTP_200_OK,
    summary="List rule change log",
    description="Append-only history of rule changes, oldest first",
)
async def list_rule_logs(
    service: RiskService,
    rule_id: str | None = None,
    action: ChangeAction | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[RuleChangeLogRead]:
    """Read the rule change log."""
    filters = RuleChangeLogFilter(
        rule_id=rule_id,
        action=action,
        limit=max(1, min(limit, 500)),  # Cap at 500
        offset=max(offset, 0),
    )
    entries = await service.rule_store.audit_log.list(filters)
    return [RuleChangeLogRead.from_entry(entry) for entry in entries]


@router.post(
    "/scan",
    response_model=ScanReportRead,
    status_code=status.HTTP_200_OK,
    summary="Run a risk scan now",
    description="Run one auto-notify scan immediately; 409 if one is already running",
)
async def run_scan(service: RiskService) -> ScanReportRead:
    report = await service.run_scheduled_scan()
    if report.status is ScanStatus.SKIPPED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A risk scan is already running",
        )
    return ScanReportRead(**report.to_dict())


# NOTE: No POST, PUT, PATCH, or DELETE endpoints exist for the change log,
# and rules cannot be created or deleted through the API.
