"""Application service: Commit Checkout use case.

Creates one external order per shipment group, then optionally asks the
Delivery Coordinator to align their deliveries.

Request keys are derived from the checkout id and the group key, so
submitting the same checkout again returns the receipts of orders that
already exist and only creates the missing ones.  If one group fails the
error propagates; orders already created for other groups are kept.
"""

from __future__ import annotations

import structlog

from giftflow.application.delivery_coordinator import DeliveryCoordinator
from giftflow.application.dto import CheckoutResultDTO, ReceiptDTO
from giftflow.application.notifications import notify
from giftflow.application.order_committer import OrderCommitter
from giftflow.domain.exceptions import ValidationError
from giftflow.domain.gateway.notifier import Notifier
from giftflow.domain.model.address import BuyerInfo
from giftflow.domain.model.receipt import OrderReceipt
from giftflow.domain.model.shipment import ShipmentGroup

logger = structlog.get_logger(__name__)


class CommitCheckoutHandler:

    def __init__(
        self,
        committer: OrderCommitter,
        coordinator: DeliveryCoordinator,
        notifier: Notifier | None = None,
    ) -> None:
        self._committer = committer
        self._coordinator = coordinator
        self._notifier = notifier

    def handle(
        self,
        checkout_id: str,
        groups: list[ShipmentGroup],
        buyer: BuyerInfo,
        payment_ref: str,
        registry_id: str | None = None,
        synchronize: bool = False,
        special_instructions: str | None = None,
    ) -> CheckoutResultDTO:
        """Commit every group.

        Steps:
        1. Check that every group has a selected rate (nothing is created
           otherwise).
        2. Commit the groups in order, one request key each.
        3. Coordinate deliveries when requested.
        4. Notify buyer and recipients, and tell each recipient the
           coordinated delivery date when deliveries were synchronized.
        """
        if not groups:
            raise ValidationError("Checkout has no shipment groups")
        for group in groups:
            if group.selected_rate is None:
                raise ValidationError(
                    f"No shipping rate selected for shipment group {group.group_key}"
                )

        total = len(groups)
        receipts: list[OrderReceipt] = []
        for index, group in enumerate(groups, start=1):
            attributes = {"shipping_label": group.label}
            if registry_id:
                attributes["registry_id"] = registry_id
            tags = ["giftflow", "registry"]
            if total > 1:
                tags.append("split-shipment")

            receipt = self._committer.commit(
                OrderReceipt.key_for(checkout_id, group.group_key),
                group,
                buyer,
                payment_ref,
                note=f"Registry gift order {index} of {total}",
                tags=tags,
                attributes=attributes,
            )
            receipts.append(receipt)

        coordinated = self._coordinator.coordinate(
            receipts, synchronize, special_instructions
        )
        logger.info(
            "Checkout committed",
            checkout_id=checkout_id,
            orders=len(receipts),
            coordinated=coordinated,
        )

        self._announce(checkout_id, groups, receipts, buyer, synchronize)
        if synchronize:
            self._announce_coordination(groups, receipts, coordinated, special_instructions)
        return CheckoutResultDTO(
            checkout_id=checkout_id,
            receipts=[to_receipt_dto(r) for r in receipts],
            coordinated=coordinated,
        )

    def _announce(
        self,
        checkout_id: str,
        groups: list[ShipmentGroup],
        receipts: list[OrderReceipt],
        buyer: BuyerInfo,
        synchronize: bool,
    ) -> None:
        notify(
            self._notifier,
            "multi-address-order-confirmation",
            buyer.email,
            {
                "checkout_id": checkout_id,
                "order_numbers": [r.order_number for r in receipts],
                "shipment_count": len(receipts),
                "coordinated_delivery": synchronize,
            },
        )
        for group, receipt in zip(groups, receipts):
            notify(
                self._notifier,
                "gift-shipment-created",
                group.address.email,
                {
                    "recipient_name": group.address.full_name,
                    "order_number": receipt.order_number,
                    "item_count": len(group.items),
                    "estimated_delivery": receipt.estimated_delivery.isoformat()
                    if receipt.estimated_delivery
                    else None,
                },
            )


    def _announce_coordination(
        self,
        groups: list[ShipmentGroup],
        receipts: list[OrderReceipt],
        coordinated: bool,
        special_instructions: str | None,
    ) -> None:
        target = DeliveryCoordinator.latest_delivery(receipts)
        for group, receipt in zip(groups, receipts):
            notify(
                self._notifier,
                "delivery-coordination",
                group.address.email,
                {
                    "recipient_name": group.address.full_name,
                    "order_number": receipt.order_number,
                    "order_numbers": [r.order_number for r in receipts],
                    "coordinated": coordinated,
                    "target_delivery_date": target.isoformat() if target else None,
                    "special_instructions": special_instructions,
                },
            )


def to_receipt_dto(receipt: OrderReceipt) -> ReceiptDTO:
    return ReceiptDTO(
        request_key=receipt.request_key,
        status=receipt.status.value,
        order_id=receipt.external_order_id,
        order_number=receipt.order_number,
        total_price=str(receipt.total_price) if receipt.total_price else None,
        estimated_delivery=receipt.estimated_delivery.isoformat()
        if receipt.estimated_delivery
        else None,
    )
