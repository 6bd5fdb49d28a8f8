"""Tests for the annotation audit trail."""
from __future__ import annotations

from pathlib import Path

from aiannotator.core.audit import AnnotationAuditEntry, AnnotationAuditLog, AuditOutcome


def test_audit_log_keeps_recent_entries() -> None:
    log = AnnotationAuditLog(max_entries=2)
    for index in range(3):
        log.record(AnnotationAuditEntry(uri=f"file:///f{index}.py", outcome=AuditOutcome.SKIPPED))

    assert [entry.uri for entry in log.entries()] == ["file:///f1.py", "file:///f2.py"]
    assert log.entries(limit=1)[0].uri == "file:///f2.py"
    assert log.entries(limit=0) == []
    assert log.count(AuditOutcome.SKIPPED) == 2
    assert log.count(AuditOutcome.ANNOTATED) == 0


def test_audit_log_writes_json_lines(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "audit.jsonl"
    log = AnnotationAuditLog(path)
    log.record(
        AnnotationAuditEntry(
            uri="file:///a.py",
            outcome=AuditOutcome.ANNOTATED,
            reason="3-line block, pure insert",
            start_line=2,
            end_line=4,
            employee_id="E1",
        )
    )
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n\n")
    log.record(AnnotationAuditEntry(uri="file:///b.py", outcome=AuditOutcome.FAILED))

    entries = log.read_entries()

    assert [entry.uri for entry in entries] == ["file:///a.py", "file:///b.py"]
    assert entries[0].outcome is AuditOutcome.ANNOTATED
    assert entries[0].start_line == 2
    assert entries[0].employee_id == "E1"


def test_audit_log_without_file() -> None:
    log = AnnotationAuditLog()

    assert log.log_path is None
    assert log.read_entries() == []
