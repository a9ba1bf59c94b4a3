"""Wager audit log - one JSON record per idempotency reference, rewritten atomically.

Every placement attempt writes a PENDING record before the provider is called,
and every provider response updates that record in place. The file is a JSON
list of WagerRecord objects; a timestamped ``.bak.<ts>`` copy is taken before
each overwrite and only the newest ``keep_backups`` of those are kept. An
unparsable file is moved aside to ``.bak.<ts>.corrupt`` on load, which pruning
never removes.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

import structlog
from pydantic import ValidationError

from wagerflow.models.status import TERMINAL_RECORD_STATUSES
from wagerflow.models.wager import WagerIntent, WagerRecord, utc_now

log = structlog.get_logger(__name__)

CORRUPT_SUFFIX = ".corrupt"


def backup_path_for(path: Path, now: datetime | None = None, suffix: str = "") -> Path:
    """Return an unused ``<name>.bak.<UTC timestamp><suffix>`` sibling of path."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S%f")
    candidate = path.with_name(f"{path.name}.bak.{stamp}{suffix}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.bak.{stamp}-{n}{suffix}")
        n += 1
    return candidate


class AuditLog:
    """Append/update store of WagerRecords keyed by idempotency reference."""

    def __init__(self, path: str | Path, keep_backups: int = 10) -> None:
        self.path = Path(path)
        self.keep_backups = keep_backups
        self._lock = Lock()
        self._records: dict[str, WagerRecord] = {}
        self._loaded = False

    # Persistence

    def load(self) -> None:
        """(Re)load records from disk."""
        with self._lock:
            self._load_locked()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load_locked()

    def _load_locked(self) -> None:
        self._records = {}
        self._loaded = True
        if not self.path.exists():
            return
        try:
            text = self.path.read_text(encoding="utf-8")
            if not text.strip():
                return
            data = json.loads(text)
            if not isinstance(data, list):
                raise ValueError("audit log root is not a list")
            records = [WagerRecord.model_validate(item) for item in data]
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError, ValueError) as e:
            backup = backup_path_for(self.path, suffix=CORRUPT_SUFFIX)
            self.path.rename(backup)
            log.warning("audit_log_corrupt", path=str(self.path), backup=str(backup), error=str(e))
            return
        for rec in records:
            self._records[rec.idempotency_ref] = rec
        log.debug("audit_log_loaded", path=str(self.path), records=len(self._records))

    def _prune_backups(self) -> None:
        if self.keep_backups <= 0:
            return
        backups = sorted(
            p for p in self.path.parent.glob(f"{self.path.name}.bak.*") if not p.name.endswith(CORRUPT_SUFFIX)
        )
        for old in backups[: -self.keep_backups]:
            old.unlink(missing_ok=True)

    def _save_locked(self) -> None:
        """Back up the current file, then write all records via tempfile + rename."""
        payload = [
            rec.model_dump(mode="json")
            for rec in sorted(self._records.values(), key=lambda r: r.created_at)
        ]
        temp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                shutil.copy2(self.path, backup_path_for(self.path))
                self._prune_backups()
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.path.parent,
                delete=False,
                suffix=".json",
                encoding="utf-8",
            ) as temp_file:
                json.dump(payload, temp_file, indent=2)
                temp_path = Path(temp_file.name)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            log.error("audit_log_save_failed", path=str(self.path), error=str(e))

    # Lookup

    def _find_locked(self, reference: str, event_id: str | None = None) -> WagerRecord | None:
        rec = self._records.get(reference)
        if rec is not None:
            return rec
        for candidate in self._records.values():
            if candidate.matches(reference):
                return candidate
        if event_id is None:
            return None
        same_event = [r for r in self._records.values() if r.event_id == str(event_id)]
        if not same_event:
            return None
        fallback = max(same_event, key=lambda r: r.created_at)
        log.info("audit_fallback_by_event", reference=reference, event_id=event_id, matched=fallback.idempotency_ref)
        return fallback

    def find(self, reference: str, event_id: str | None = None) -> WagerRecord | None:
        """Look up by idempotency, remote or local reference; else most recent record for event_id."""
        with self._lock:
            self._ensure_loaded()
            rec = self._find_locked(reference, event_id)
            return rec.model_copy() if rec is not None else None

    def records(self, status: str | None = None) -> list[WagerRecord]:
        """All records (oldest first), optionally filtered by status."""
        with self._lock:
            self._ensure_loaded()
            out = sorted(self._records.values(), key=lambda r: r.created_at)
            if status:
                out = [r for r in out if r.status == status.upper()]
            return [r.model_copy() for r in out]

    def stats(self) -> dict[str, int]:
        """Record count by status."""
        with self._lock:
            self._ensure_loaded()
            return dict(Counter(r.status for r in self._records.values()))

    def __len__(self) -> int:
        with self._lock:
            self._ensure_loaded()
            return len(self._records)

    # Mutation

    def begin_attempt(self, intent: WagerIntent) -> WagerRecord:
        """Create or refresh the PENDING record for intent. Terminal records are returned untouched."""
        with self._lock:
            self._ensure_loaded()
            rec = self._records.get(intent.idempotency_ref)
            if rec is None:
                rec = WagerRecord.from_intent(intent)
                self._records[intent.idempotency_ref] = rec
                log.info("audit_record_created", event_id=intent.event_id, ref=intent.idempotency_ref, local_ref=rec.local_ref)
            elif rec.status in TERMINAL_RECORD_STATUSES:
                return rec.model_copy()
            else:
                rec.status = "PENDING"
                rec.stake = intent.stake
                rec.price = intent.price
                if intent.remote_ref:
                    rec.remote_ref = intent.remote_ref
            rec.attempts += 1
            self._save_locked()
            return rec.model_copy()

    def _update_locked(
        self,
        reference: str,
        status: str | None,
        last_response: str | None,
        remote_ref: str | None,
        event_id: str | None,
    ) -> tuple[WagerRecord | None, bool]:
        rec = self._find_locked(reference, event_id)
        if rec is None:
            log.warning("audit_record_missing", reference=reference, event_id=event_id)
            return None, False
        if rec.status in TERMINAL_RECORD_STATUSES:
            if status and status.upper() != rec.status:
                log.warning("audit_record_final", ref=rec.idempotency_ref, status=rec.status, ignored=status)
            return rec, False
        before = rec.status
        if last_response is not None:
            rec.last_response = last_response
        if remote_ref:
            rec.remote_ref = remote_ref
        if status:
            rec.status = status.upper()
            if rec.status in TERMINAL_RECORD_STATUSES:
                rec.completed_at = utc_now()
        self._save_locked()
        if rec.status != before:
            log.info("audit_status_changed", ref=rec.idempotency_ref, before=before, after=rec.status)
        return rec, rec.status in TERMINAL_RECORD_STATUSES

    def update(
        self,
        reference: str,
        *,
        status: str | None = None,
        last_response: str | None = None,
        remote_ref: str | None = None,
        event_id: str | None = None,
    ) -> WagerRecord | None:
        """Update a record in place. A terminal record is never overwritten."""
        with self._lock:
            self._ensure_loaded()
            rec, _ = self._update_locked(reference, status, last_response, remote_ref, event_id)
            return rec.model_copy() if rec is not None else None

    def record_response(
        self,
        idempotency_ref: str,
        status: str,
        remote_ref: str | None = None,
        raw: str | None = None,
    ) -> WagerRecord | None:
        """Store the raw provider code of the latest response; the lifecycle status is ``status``."""
        return self.update(idempotency_ref, status=status, last_response=raw, remote_ref=remote_ref)

    def finalize(self, reference: str, status: str, event_id: str | None = None) -> bool:
        """Move a record to a terminal status (sets completed_at).

        Returns True only for the call that moved the record out of a non-terminal
        status. A second finalize of the same wager returns False, so callers
        apply money movements at most once per reference.
        """
        with self._lock:
            self._ensure_loaded()
            _, transitioned = self._update_locked(reference, status, None, None, event_id)
            return transitioned
