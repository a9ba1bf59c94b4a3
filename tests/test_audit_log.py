"""Audit log tests: persistence, corruption recovery, terminal records, lookup fallback."""

import json
from datetime import datetime, timezone

from conftest import make_intent
from wagerflow.storage.audit_log import AuditLog, backup_path_for


def _backups(path):
    return sorted(path.parent.glob(f"{path.name}.bak.*"))


def test_begin_attempt_creates_pending_record(audit):
    intent = make_intent("e1")
    rec = audit.begin_attempt(intent)
    assert rec.status == "PENDING"
    assert rec.idempotency_ref == intent.idempotency_ref
    assert rec.local_ref
    assert rec.attempts == 1
    data = json.loads(audit.path.read_text())
    assert data[0]["idempotency_ref"] == intent.idempotency_ref


def test_records_survive_reload(tmp_path):
    path = tmp_path / "bets.json"
    first = AuditLog(path)
    intent = make_intent("e1")
    first.begin_attempt(intent)
    first.record_response(intent.idempotency_ref, "ACCEPTED", remote_ref="r-1", raw="ACCEPTED")

    second = AuditLog(path)
    rec = second.find("r-1")
    assert rec is not None
    assert rec.status == "ACCEPTED"
    assert rec.idempotency_ref == intent.idempotency_ref


def test_corrupt_file_is_backed_up_and_log_starts_empty(tmp_path):
    path = tmp_path / "bets.json"
    original = b'[{"idempotency_ref": "x", "event_id": '
    path.write_bytes(original)

    audit = AuditLog(path)
    assert len(audit) == 0
    backups = _backups(path)
    assert len(backups) == 1
    assert backups[0].read_bytes() == original
    assert not path.exists()

    audit.begin_attempt(make_intent("e1"))
    assert len(json.loads(path.read_text())) == 1


def test_backup_taken_before_overwrite_and_pruned(tmp_path):
    path = tmp_path / "bets.json"
    audit = AuditLog(path, keep_backups=2)
    for n in range(4):
        audit.begin_attempt(make_intent(f"e{n}"))
    backups = _backups(path)
    assert len(backups) == 2
    assert len(json.loads(backups[-1].read_text())) == 3


def test_pruning_keeps_the_corrupt_file_backup(tmp_path):
    path = tmp_path / "bets.json"
    original = b"{not json"
    path.write_bytes(original)

    audit = AuditLog(path, keep_backups=3)
    for n in range(5):
        audit.begin_attempt(make_intent(f"e{n}"))

    corrupt = [p for p in _backups(path) if p.name.endswith(".corrupt")]
    routine = [p for p in _backups(path) if not p.name.endswith(".corrupt")]
    assert len(corrupt) == 1
    assert corrupt[0].read_bytes() == original
    assert len(routine) == 3


def test_backup_path_is_timestamped_and_unique(tmp_path):
    path = tmp_path / "bets.json"
    now = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)
    first = backup_path_for(path, now)
    assert first.name == "bets.json.bak.20240501123000000000"
    first.write_text("x")
    assert backup_path_for(path, now) != first


def test_terminal_status_is_never_overwritten(audit):
    intent = make_intent("e1")
    audit.begin_attempt(intent)
    audit.finalize(intent.idempotency_ref, "WON")
    rec = audit.update(intent.idempotency_ref, status="LOST", last_response="LOST")
    assert rec.status == "WON"
    assert audit.begin_attempt(intent).status == "WON"
    assert audit.find(intent.idempotency_ref).completed_at is not None


def test_find_falls_back_to_latest_record_for_event(audit):
    older, newer = make_intent("e7"), make_intent("e7")
    audit.begin_attempt(older)
    audit.begin_attempt(newer)
    assert audit.find("unknown-ref") is None
    assert audit.find("unknown-ref", event_id="e7").idempotency_ref == newer.idempotency_ref


def test_records_filter_and_stats(audit):
    a, b = make_intent("a"), make_intent("b")
    audit.begin_attempt(a)
    audit.begin_attempt(b)
    audit.record_response(a.idempotency_ref, "ACCEPTED", raw="ACCEPTED")
    assert [r.event_id for r in audit.records("accepted")] == ["a"]
    assert audit.stats() == {"ACCEPTED": 1, "PENDING": 1}


def test_update_missing_record_returns_none(audit):
    assert audit.update("nope", status="WON") is None
