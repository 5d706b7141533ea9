"""Payment collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from giftflow.domain.model.value_objects import Money


@dataclass(frozen=True)
class PaymentReceipt:
    id: str
    payment_ref: str
    amount: Money
    kind: str  # "charge" or "reversal"


class PaymentGateway(ABC):
    """Raises TransientError for retryable failures."""

    @abstractmethod
    def charge(self, payment_ref: str, amount: Money) -> PaymentReceipt:
        """Capture *amount* against *payment_ref*."""

    @abstractmethod
    def reverse(
        self, payment_ref: str, amount: Money, idempotency_key: str | None = None
    ) -> PaymentReceipt:
        """Return *amount* previously captured against *payment_ref*.

        A reversal repeated with the same *idempotency_key* returns the
        first receipt and moves no money.
        """
