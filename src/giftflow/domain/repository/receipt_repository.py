"""Abstract repository for OrderReceipt idempotency records."""

from __future__ import annotations

from abc import ABC, abstractmethod

from giftflow.domain.model.receipt import OrderReceipt, ReceiptStatus


class ReceiptRepository(ABC):

    @abstractmethod
    def insert_pending(self, receipt: OrderReceipt) -> bool:
        """Insert a new receipt unless one already exists for its request key.

        This is the uniqueness constraint the Order Committer relies on:
        of any number of concurrent inserts for one key exactly one returns
        True.
        """

    @abstractmethod
    def get(self, request_key: str) -> OrderReceipt | None:
        """Return the receipt for *request_key*, or None."""

    @abstractmethod
    def compare_and_save(self, receipt: OrderReceipt, expected_version: int) -> bool:
        """Replace the stored receipt if its version still matches.

        On success both copies carry ``expected_version + 1``.
        """

    @abstractmethod
    def list_by_status(self, status: ReceiptStatus) -> list[OrderReceipt]:
        """Return every receipt currently in *status*."""
