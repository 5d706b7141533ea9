"""Delivery Coordinator: best-effort alignment of split-shipment deliveries.

Asks fulfillment to hold earlier shipments until the latest estimated
delivery among the committed orders.  A failure to annotate one order is
logged and reported through the return value; orders are never rolled back
because coordination failed.
"""

from __future__ import annotations

from datetime import date

import structlog

from giftflow.domain.exceptions import DomainException
from giftflow.domain.gateway.order_platform import OrderPlatform
from giftflow.domain.model.receipt import OrderReceipt

logger = structlog.get_logger(__name__)


class DeliveryCoordinator:

    def __init__(self, order_platform: OrderPlatform) -> None:
        self._order_platform = order_platform

    def coordinate(
        self,
        receipts: list[OrderReceipt],
        want_synchronized: bool,
        special_instructions: str | None = None,
    ) -> bool:
        """Return True when every committed order was annotated (or none needed it)."""
        if not want_synchronized:
            return True

        committed = [r for r in receipts if r.is_committed and r.external_order_id]
        target = self.latest_delivery(committed)
        if target is None or len(committed) < 2:
            return True

        note = f"Coordinate delivery with other orders. Hold shipment until {target.isoformat()}."
        if special_instructions:
            note = f"{note} {special_instructions}"
        attributes = {
            "requested_delivery_date": target.isoformat(),
            "coordinated_orders": ",".join(r.order_number or "" for r in committed),
        }

        all_annotated = True
        for receipt in committed:
            try:
                self._order_platform.annotate_order(
                    receipt.external_order_id, note, attributes
                )
            except DomainException as exc:
                all_annotated = False
                logger.warning(
                    "Could not annotate order for coordinated delivery",
                    order_id=receipt.external_order_id,
                    request_key=receipt.request_key,
                    error=str(exc),
                )
        return all_annotated

    @staticmethod
    def latest_delivery(receipts: list[OrderReceipt]) -> date | None:
        dates = [r.estimated_delivery for r in receipts if r.estimated_delivery]
        return max(dates) if dates else None
