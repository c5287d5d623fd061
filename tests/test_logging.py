"""Tests for structured log output."""

import logging

from app.core.logging import AuditLogger, StructuredFormatter


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "scan done", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_includes_context() -> None:
    line = StructuredFormatter().format(
        make_record(rule_key="overdue_tasks", record_id="rec1", entry_id=None)
    )

    assert "level=INFO" in line
    assert "message=scan done" in line
    assert "rule_key=overdue_tasks" in line
    assert "record_id=rec1" in line
    assert "entry_id" not in line


def test_audit_logger_emits_rule_context(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="audit"):
        AuditLogger().log("disabled", "blocked_tasks", "enabled: true → false", entry_id=4)

    (record,) = caplog.records
    assert record.action == "disabled"
    assert record.rule_key == "blocked_tasks"
    assert record.entry_id == 4
    assert "enabled: true → false" in record.getMessage()
