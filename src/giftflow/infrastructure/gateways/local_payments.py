"""JSON-file payment ledger used when running against local data.

Records charges and reversals; a reversal never exceeds what was charged
against the same payment reference, and a reversal repeated under the same
idempotency key is answered from the ledger instead of being recorded twice.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.gateway.payment import PaymentGateway, PaymentReceipt
from giftflow.domain.model.value_objects import Money
from giftflow.infrastructure.persistence._codec import file_lock, write_json_atomic


class JsonPaymentLedger(PaymentGateway):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._ensure_file()

    def charge(self, payment_ref: str, amount: Money) -> PaymentReceipt:
        if amount.is_zero:
            raise ValidationError("Cannot charge a zero amount")
        return self._record(payment_ref, amount, "charge")

    def reverse(
        self, payment_ref: str, amount: Money, idempotency_key: str | None = None
    ) -> PaymentReceipt:
        return self._record(payment_ref, amount, "reversal", idempotency_key)

    def balance(self, payment_ref: str) -> Decimal:
        return self._balance(self._load_raw(), payment_ref)

    # --- Internal helpers -----------------------------------------------------

    def _record(
        self,
        payment_ref: str,
        amount: Money,
        kind: str,
        idempotency_key: str | None = None,
    ) -> PaymentReceipt:
        if not payment_ref:
            raise ValidationError("A payment reference is required")
        with self._locked():
            entries = self._load_raw()
            if idempotency_key is not None:
                for e in entries:
                    if e.get("idempotency_key") == idempotency_key:
                        return PaymentReceipt(
                            id=e["id"],
                            payment_ref=e["payment_ref"],
                            amount=Money.of(e["amount"], e["currency"]),
                            kind=e["kind"],
                        )
            if kind == "reversal" and self._balance(entries, payment_ref) < amount.amount:
                raise ValidationError(
                    f"Cannot reverse {amount} on '{payment_ref}': exceeds captured balance"
                )
            raw = {
                "id": uuid.uuid4().hex,
                "payment_ref": payment_ref,
                "amount": str(amount.amount),
                "currency": amount.currency,
                "kind": kind,
                "idempotency_key": idempotency_key,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            entries.append(raw)
            write_json_atomic(self._file_path, entries)
        return PaymentReceipt(id=raw["id"], payment_ref=payment_ref, amount=amount, kind=kind)

    @staticmethod
    def _balance(entries: list[dict], payment_ref: str) -> Decimal:
        balance = Decimal("0")
        for e in entries:
            if e["payment_ref"] != payment_ref:
                continue
            amount = Decimal(e["amount"])
            balance += amount if e["kind"] == "charge" else -amount
        return balance

    def _load_raw(self) -> list[dict]:
        return json.loads(self._file_path.read_text(encoding="utf-8"))

    def _locked(self):
        return file_lock(self._file_path.with_name(f".{self._file_path.name}.lock"))

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("[]", encoding="utf-8")
