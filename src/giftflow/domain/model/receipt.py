"""OrderReceipt: the durable idempotency record behind every external order.

A receipt is written as PENDING *before* the order platform is called and
backfilled afterwards.  A PENDING receipt that outlives its worker is the
reconciliation trail: the order may exist upstream but is not yet confirmed
locally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.value_objects import Money


class ReceiptStatus(Enum):
    PENDING = "PENDING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrderReceipt:
    request_key: str
    status: ReceiptStatus = ReceiptStatus.PENDING
    external_order_id: str | None = None
    order_number: str | None = None
    total_price: Money | None = None
    estimated_delivery: date | None = None
    attempts: int = 1
    last_error: str | None = None
    version: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @staticmethod
    def key_for(scope_id: str, group_key: str) -> str:
        """Derive the idempotency key for one shipment of a checkout or campaign."""
        if not scope_id or not group_key:
            raise ValidationError("Both a scope id and a group key are required")
        return f"{scope_id}:{group_key}"

    # --- State transitions ----------------------------------------------------

    def mark_committed(
        self,
        external_order_id: str,
        order_number: str,
        total_price: Money,
        estimated_delivery: date | None,
        now: datetime | None = None,
    ) -> None:
        """Record the upstream order.

        Allowed from any state: an order found upstream for a FAILED or
        CANCELLED receipt is still the one live order for this key.
        """
        self.status = ReceiptStatus.COMMITTED
        self.external_order_id = external_order_id
        self.order_number = order_number
        self.total_price = total_price
        self.estimated_delivery = estimated_delivery
        self.last_error = None
        self.updated_at = now or _now()

    def mark_failed(self, reason: str, now: datetime | None = None) -> None:
        if self.status == ReceiptStatus.COMMITTED:
            raise ValidationError(f"Receipt {self.request_key} is already committed")
        self.status = ReceiptStatus.FAILED
        self.last_error = reason
        self.updated_at = now or _now()

    def reopen(self, now: datetime | None = None) -> None:
        """FAILED / CANCELLED / stale PENDING -> PENDING for another attempt."""
        if self.status == ReceiptStatus.COMMITTED:
            raise ValidationError(f"Receipt {self.request_key} is already committed")
        self.status = ReceiptStatus.PENDING
        self.attempts += 1
        self.updated_at = now or _now()

    # --- Queries --------------------------------------------------------------

    @property
    def is_committed(self) -> bool:
        return self.status == ReceiptStatus.COMMITTED

    def is_stale(self, now: datetime, timeout_seconds: float) -> bool:
        return (
            self.status == ReceiptStatus.PENDING
            and (now - self.updated_at).total_seconds() >= timeout_seconds
        )
