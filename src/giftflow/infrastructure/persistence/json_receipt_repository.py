"""JSON-file-backed implementation of ReceiptRepository.

One file per request key.  ``insert_pending`` writes the receipt to a temp
file and then hard-links it into place; ``link`` refuses to replace an
existing name, so exactly one caller wins, across processes too, and the
winner's file is never seen half-written.  An empty receipt file, from a
writer that died between create and write, reads as a PENDING receipt aged
by its modification time so the stale-claim recovery can take it over.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from giftflow.domain.model.receipt import OrderReceipt, ReceiptStatus
from giftflow.domain.repository.receipt_repository import ReceiptRepository
from giftflow.infrastructure.persistence._codec import (
    file_lock,
    receipt_from_raw,
    receipt_to_raw,
    safe_file_name,
    write_json_atomic,
)


class JsonReceiptRepository(ReceiptRepository):

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._directory.mkdir(parents=True, exist_ok=True)

    # --- ReceiptRepository interface ------------------------------------------

    def insert_pending(self, receipt: OrderReceipt) -> bool:
        path = self._path(receipt.request_key)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(receipt_to_raw(receipt), indent=2) + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                return False
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        return True

    def get(self, request_key: str) -> OrderReceipt | None:
        path = self._path(request_key)
        try:
            text = path.read_text(encoding="utf-8")
            if not text.strip():
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                return OrderReceipt(
                    request_key=request_key,
                    version=-1,
                    created_at=modified,
                    updated_at=modified,
                )
        except FileNotFoundError:
            return None
        return receipt_from_raw(json.loads(text))

    def compare_and_save(self, receipt: OrderReceipt, expected_version: int) -> bool:
        path = self._path(receipt.request_key)
        with self._locked(receipt.request_key):
            current = self.get(receipt.request_key)
            if current is None or current.version != expected_version:
                return False
            receipt.version = expected_version + 1
            write_json_atomic(path, receipt_to_raw(receipt))
        return True

    def list_by_status(self, status: ReceiptStatus) -> list[OrderReceipt]:
        receipts = []
        for path in sorted(self._directory.glob("*.json")):
            text = path.read_text(encoding="utf-8")
            if not text.strip():
                continue
            receipt = receipt_from_raw(json.loads(text))
            if receipt.status == status:
                receipts.append(receipt)
        return receipts

    # --- File helpers ---------------------------------------------------------

    def _path(self, request_key: str) -> Path:
        return self._directory / f"{safe_file_name(request_key)}.json"

    def _locked(self, request_key: str):
        return file_lock(self._directory / f".{safe_file_name(request_key)}.lock")
