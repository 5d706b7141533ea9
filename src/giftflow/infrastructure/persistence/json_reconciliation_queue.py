"""JSON-file-backed implementation of ReconciliationQueue."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from giftflow.domain.exceptions import EntityNotFoundError
from giftflow.domain.repository.reconciliation_queue import (
    ReconciliationEntry,
    ReconciliationKind,
    ReconciliationQueue,
)
from giftflow.infrastructure.persistence._codec import (
    file_lock,
    read_json,
    write_json_atomic,
)


class JsonReconciliationQueue(ReconciliationQueue):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._ensure_file()

    # --- ReconciliationQueue interface ----------------------------------------

    def push(self, entry: ReconciliationEntry) -> None:
        with self._locked():
            entries = read_json(self._file_path)
            entries.append(self._to_raw(entry))
            write_json_atomic(self._file_path, entries)

    def list_open(self) -> list[ReconciliationEntry]:
        entries = [self._to_domain(raw) for raw in read_json(self._file_path)]
        return sorted(
            (e for e in entries if not e.resolved), key=lambda e: e.created_at
        )

    def resolve(self, entry_id: str) -> None:
        with self._locked():
            entries = read_json(self._file_path)
            for raw in entries:
                if raw["id"] == entry_id:
                    raw["resolved"] = True
                    break
            else:
                raise EntityNotFoundError(f"Reconciliation entry '{entry_id}' not found")
            write_json_atomic(self._file_path, entries)

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(entry: ReconciliationEntry) -> dict:
        return {
            "id": entry.id,
            "kind": entry.kind.value,
            "reference": entry.reference,
            "reason": entry.reason,
            "amount": entry.amount,
            "details": dict(entry.details),
            "created_at": entry.created_at.isoformat(),
            "resolved": entry.resolved,
        }

    @staticmethod
    def _to_domain(raw: dict) -> ReconciliationEntry:
        return ReconciliationEntry(
            id=raw["id"],
            kind=ReconciliationKind(raw["kind"]),
            reference=raw["reference"],
            reason=raw["reason"],
            amount=raw.get("amount"),
            details=raw.get("details", {}),
            created_at=datetime.fromisoformat(raw["created_at"]),
            resolved=raw.get("resolved", False),
        )

    # --- File helpers ---------------------------------------------------------

    def _locked(self):
        return file_lock(self._file_path.with_name(f".{self._file_path.name}.lock"))

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("[]", encoding="utf-8")
