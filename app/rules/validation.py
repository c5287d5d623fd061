"""Validation of rule field updates and what-if overrides."""

from typing import Any

from app.rules.models import RuleOverrides

MUTABLE_FIELDS = {
    "enabled": bool,
    "threshold_days": int,
    "progress_threshold": int,
    "include_milestones": bool,
    "auto_notify": bool,
    "blocked_value": str,
}


class RuleValidationError(ValueError):
    """Raised when a rule update violates a field invariant."""

    pass


class InvalidThresholdError(RuleValidationError):
    """Raised when threshold_days is negative."""

    pass


class InvalidProgressThresholdError(RuleValidationError):
    """Raised when progress_threshold is outside 0-100."""

    pass


class InvalidRuleFieldError(RuleValidationError):
    """Raised for unknown, immutable, or wrongly-typed fields."""

    pass


def validate_threshold_days(value: int) -> int:
    if value < 0:
        raise InvalidThresholdError(f"thresholdDays must be >= 0, got {value}")
    return value


def validate_progress_threshold(value: int) -> int:
    if not 0 <= value <= 100:
        raise InvalidProgressThresholdError(
            f"progressThreshold must be between 0 and 100, got {value}"
        )
    return value


def validate_rule_update(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial rule update.

    The whole update is checked before anything is applied, so a single
    bad field rejects all of them.

    Args:
        fields: Field name to new value (snake_case names)

    Returns:
        The validated fields, with blank blocked_value normalised to None

    Raises:
        RuleValidationError: If any field is unknown, mistyped or out of range
    """
    validated: dict[str, Any] = {}

    for name, value in fields.items():
        expected = MUTABLE_FIELDS.get(name)
        if expected is None:
            raise InvalidRuleFieldError(f"Field cannot be updated: {name}")

        if name == "blocked_value":
            if value is not None and not isinstance(value, str):
                raise InvalidRuleFieldError("blockedValue must be a string")
            validated[name] = value.strip() or None if value else None
            continue

        # bool is a subclass of int; reject it for numeric fields
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise InvalidRuleFieldError(f"{name} must be an integer")
        if expected is bool and not isinstance(value, bool):
            raise InvalidRuleFieldError(f"{name} must be a boolean")

        if name == "threshold_days":
            validate_threshold_days(value)
        elif name == "progress_threshold":
            validate_progress_threshold(value)

        validated[name] = value

    return validated


def validate_overrides(overrides: RuleOverrides) -> RuleOverrides:
    """Apply the stored-rule invariants to what-if override values."""
    if overrides.threshold_days is not None:
        validate_threshold_days(overrides.threshold_days)
    if overrides.progress_threshold is not None:
        validate_progress_threshold(overrides.progress_threshold)
    return overrides
