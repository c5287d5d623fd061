"""YAML seed rule loader with integrity hash."""

import hashlib
from pathlib import Path
from typing import Any

import yaml

from app.rules.models import RuleConfig, RuleType

# Default rulesets directory
RULESETS_DIR = Path(__file__).parent.parent.parent / "rulesets"


class SeedRulesError(ValueError):
    """Raised when a seed rules file is structurally invalid."""

    pass


def compute_ruleset_hash(content: str) -> str:
    """Compute SHA256 hash of seed file content.

    Args:
        content: Raw YAML content string

    Returns:
        SHA256 hex digest
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def load_ruleset(
    filename: str,
    rulesets_dir: Path | None = None,
) -> tuple[dict[str, Any], str]:
    """Load a seed rules YAML file and compute its hash.

    Args:
        filename: Name of the seed file (e.g., "risk-rules.yaml")
        rulesets_dir: Directory containing seed files (defaults to /rulesets)

    Returns:
        Tuple of (parsed YAML dict, SHA256 hash)

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    if rulesets_dir is None:
        rulesets_dir = RULESETS_DIR

    filepath = rulesets_dir / filename

    if not filepath.exists():
        raise FileNotFoundError(f"Ruleset not found: {filepath}")

    content = filepath.read_text(encoding="utf-8")
    ruleset_hash = compute_ruleset_hash(content)
    ruleset = yaml.safe_load(content)

    return ruleset, ruleset_hash


INT_FIELDS = ("threshold_days", "progress_threshold")
BOOL_FIELDS = ("enabled", "include_milestones", "auto_notify")


def _check_field_types(rule: RuleConfig) -> None:
    for name in INT_FIELDS:
        value = getattr(rule, name)
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int):
            raise SeedRulesError(f"Seed rule {rule.key}: {name} must be an integer")
    for name in BOOL_FIELDS:
        if not isinstance(getattr(rule, name), bool):
            raise SeedRulesError(f"Seed rule {rule.key}: {name} must be true or false")
    if rule.blocked_value is not None and not isinstance(rule.blocked_value, str):
        raise SeedRulesError(f"Seed rule {rule.key}: blocked_value must be a string")


def parse_seed_rules(ruleset: dict[str, Any]) -> list[RuleConfig]:
    """Turn a parsed seed file into rule configs.

    Raises:
        SeedRulesError: On duplicate keys, unknown types, mistyped or
            out-of-range values
    """
    rules: list[RuleConfig] = []
    seen: set[str] = set()

    for entry in ruleset.get("rules") or []:
        try:
            rule = RuleConfig.from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise SeedRulesError(f"Invalid seed rule {entry!r}: {e}") from e

        _check_field_types(rule)
        if rule.key in seen:
            raise SeedRulesError(f"Duplicate rule key: {rule.key}")
        if rule.threshold_days < 0 or not 0 <= rule.progress_threshold <= 100:
            raise SeedRulesError(f"Seed rule {rule.key} has out-of-range thresholds")

        seen.add(rule.key)
        rules.append(rule)

    missing = set(RuleType) - {rule.type for rule in rules}
    if missing:
        names = ", ".join(sorted(t.value for t in missing))
        raise SeedRulesError(f"Seed rules missing rule types: {names}")

    return rules


def load_seed_rules(
    filename: str,
    rulesets_dir: Path | None = None,
) -> tuple[list[RuleConfig], str]:
    """Load and parse the seed rules file.

    Returns:
        Tuple of (rules, SHA256 hash of the file)
    """
    ruleset, ruleset_hash = load_ruleset(filename, rulesets_dir)
    if not isinstance(ruleset, dict):
        raise SeedRulesError(f"Seed file {filename} must be a mapping")
    return parse_seed_rules(ruleset), ruleset_hash
