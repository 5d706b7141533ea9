"""Operator-visible queue of money-affecting failures."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ReconciliationKind(Enum):
    ORDER_COMMIT = "order_commit"
    CAMPAIGN_FULFILLMENT = "campaign_fulfillment"
    REFUND = "refund"
    PAYMENT_REVERSAL = "payment_reversal"


@dataclass
class ReconciliationEntry:
    kind: ReconciliationKind
    reference: str  # request key, campaign id or contribution id
    reason: str
    amount: str | None = None
    details: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved: bool = False


class ReconciliationQueue(ABC):

    @abstractmethod
    def push(self, entry: ReconciliationEntry) -> None:
        """Record a failure that needs manual follow-up."""

    @abstractmethod
    def list_open(self) -> list[ReconciliationEntry]:
        """Return unresolved entries, oldest first."""

    @abstractmethod
    def resolve(self, entry_id: str) -> None:
        """Mark an entry as handled by an operator."""
