"""Order Committer: turns one shipment group into exactly one external order.

Idempotency contract: for a given request key there is at most one live
order.  A PENDING receipt is inserted under a uniqueness constraint
*before* the order platform is called and backfilled afterwards, so:

- a retry after success returns the stored receipt;
- a retry after a crash between "order created upstream" and "receipt
  backfilled" finds the order on the platform by request key and
  backfills instead of ordering twice;
- inside one retry budget, every attempt after the first looks the order
  up before creating it, and a timed-out attempt is awaited rather than
  re-issued (see RetryPolicy);
- a concurrent duplicate sees a fresh PENDING record and gets
  CommitInProgress.

Validation errors from the platform are not retried.  Transient errors are
retried by the shared RetryPolicy; exhaustion marks the receipt FAILED,
records a reconciliation entry and raises FatalError.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timezone

import structlog

from giftflow.application.retry import RetryPolicy
from giftflow.domain.exceptions import (
    CommitInProgress,
    FatalError,
    TransientError,
    ValidationError,
)
from giftflow.domain.gateway.order_platform import (
    OrderLine,
    OrderPlatform,
    OrderRequest,
    PlatformOrder,
)
from giftflow.domain.model.address import BuyerInfo
from giftflow.domain.model.receipt import OrderReceipt, ReceiptStatus
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.domain.repository.receipt_repository import ReceiptRepository
from giftflow.domain.repository.reconciliation_queue import (
    ReconciliationEntry,
    ReconciliationKind,
    ReconciliationQueue,
)

logger = structlog.get_logger(__name__)

DEFAULT_PENDING_TIMEOUT_SECONDS = 300.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderCommitter:

    def __init__(
        self,
        receipt_repo: ReceiptRepository,
        order_platform: OrderPlatform,
        retry_policy: RetryPolicy,
        reconciliation_queue: ReconciliationQueue,
        clock: Callable[[], datetime] = _utcnow,
        pending_timeout_seconds: float = DEFAULT_PENDING_TIMEOUT_SECONDS,
    ) -> None:
        self._receipt_repo = receipt_repo
        self._order_platform = order_platform
        self._retry = retry_policy
        self._reconciliation_queue = reconciliation_queue
        self._clock = clock
        self._pending_timeout_seconds = pending_timeout_seconds

    def commit(
        self,
        request_key: str,
        group: ShipmentGroup,
        buyer: BuyerInfo,
        payment_ref: str,
        note: str = "",
        tags: list[str] | None = None,
        attributes: dict[str, str] | None = None,
        escalate: bool = True,
    ) -> OrderReceipt:
        """Create (or return the existing) order for *request_key*.

        With ``escalate=False`` an exhausted retry budget is raised without
        a reconciliation entry; the caller owns the escalation.
        """
        if not group.items:
            raise ValidationError(f"Shipment group {group.group_key} has no items")
        if not payment_ref:
            raise ValidationError("A payment reference is required")

        estimated_delivery = (
            group.selected_rate.estimated_delivery if group.selected_rate else None
        )

        receipt = self._claim(request_key, estimated_delivery)
        if receipt.is_committed:
            return receipt

        request = self._build_request(
            request_key, group, buyer, payment_ref, note, tags or [], attributes or {}
        )
        try:
            order = self._retry.call(
                self._find_or_create(request),
                description=f"create order {request_key}",
            )
        except ValidationError as exc:
            self._mark_failed(receipt, str(exc))
            logger.warning(
                "Order rejected by platform", request_key=request_key, error=str(exc)
            )
            raise
        except FatalError as exc:
            self._mark_failed(receipt, str(exc))
            if escalate:
                self._reconciliation_queue.push(
                    ReconciliationEntry(
                        kind=ReconciliationKind.ORDER_COMMIT,
                        reference=request_key,
                        reason=str(exc),
                        amount=str(group.total_value),
                        details={"group_key": group.group_key, "payment_ref": payment_ref},
                    )
                )
            logger.error(
                "Order commit exhausted retries", request_key=request_key, error=str(exc)
            )
            raise

        return self._backfill(receipt, order, estimated_delivery)

    def lookup(self, request_key: str) -> OrderReceipt | None:
        return self._receipt_repo.get(request_key)

    # --- Internal helpers -----------------------------------------------------

    def _claim(self, request_key: str, estimated_delivery: date | None) -> OrderReceipt:
        """Return a PENDING receipt owned by this call, or an existing COMMITTED one."""
        now = self._clock()
        fresh = OrderReceipt(request_key=request_key, created_at=now, updated_at=now)
        if self._receipt_repo.insert_pending(fresh):
            return fresh

        existing = self._receipt_repo.get(request_key)
        if existing is None:
            raise TransientError(f"Receipt {request_key} vanished during claim")
        if existing.is_committed:
            logger.info("Reusing committed order", request_key=request_key)
            return existing

        # The order may exist upstream even though the receipt never learned of it.
        order = self._retry.call(
            self._order_platform.find_order,
            request_key,
            description=f"find order {request_key}",
        )
        if order is not None:
            logger.warning(
                "Recovered order created by an earlier attempt",
                request_key=request_key,
                order_id=order.id,
                previous_status=existing.status.value,
            )
            return self._backfill(existing, order, estimated_delivery)

        if existing.status == ReceiptStatus.PENDING and not existing.is_stale(
            now, self._pending_timeout_seconds
        ):
            raise CommitInProgress(f"Order for {request_key} is already being created")

        expected_version = existing.version
        existing.reopen(now)
        if not self._receipt_repo.compare_and_save(existing, expected_version):
            raise CommitInProgress(f"Order for {request_key} is already being created")
        return existing

    def _find_or_create(self, request: OrderRequest) -> Callable[[], PlatformOrder]:
        """One retryable unit: after a failed attempt, look before ordering again.

        A create whose response was lost may still have placed the order.
        """
        attempts = 0

        def unit() -> PlatformOrder:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                existing = self._order_platform.find_order(request.request_key)
                if existing is not None:
                    logger.warning(
                        "Found order placed by a failed attempt",
                        request_key=request.request_key,
                        order_id=existing.id,
                        attempt=attempts,
                    )
                    return existing
            return self._order_platform.create_order(request)

        return unit

    def _backfill(
        self,
        receipt: OrderReceipt,
        order: PlatformOrder,
        estimated_delivery: date | None,
    ) -> OrderReceipt:
        expected_version = receipt.version
        receipt.mark_committed(
            external_order_id=order.id,
            order_number=order.number,
            total_price=order.total_price,
            estimated_delivery=estimated_delivery,
            now=self._clock(),
        )
        if not self._receipt_repo.compare_and_save(receipt, expected_version):
            stored = self._receipt_repo.get(receipt.request_key)
            if stored is not None and stored.is_committed:
                return stored
            raise CommitInProgress(
                f"Receipt {receipt.request_key} changed while recording order {order.id}"
            )
        logger.info(
            "Order committed",
            request_key=receipt.request_key,
            order_id=order.id,
            order_number=order.number,
        )
        return receipt

    def _mark_failed(self, receipt: OrderReceipt, reason: str) -> None:
        expected_version = receipt.version
        receipt.mark_failed(reason, now=self._clock())
        if not self._receipt_repo.compare_and_save(receipt, expected_version):
            logger.warning(
                "Receipt changed before failure could be recorded",
                request_key=receipt.request_key,
            )

    @staticmethod
    def _build_request(
        request_key: str,
        group: ShipmentGroup,
        buyer: BuyerInfo,
        payment_ref: str,
        note: str,
        tags: list[str],
        attributes: dict[str, str],
    ) -> OrderRequest:
        lines = []
        for cart_item in group.items:
            line_attributes = {"registry_item_id": cart_item.item.item_id}
            if cart_item.gift_message:
                line_attributes["gift_message"] = cart_item.gift_message
            lines.append(
                OrderLine(
                    product_ref=cart_item.item.product_ref,
                    quantity=cart_item.item.quantity.value,
                    attributes=line_attributes,
                )
            )
        return OrderRequest(
            request_key=request_key,
            lines=lines,
            shipping_address=group.address,
            buyer=buyer,
            payment_ref=payment_ref,
            shipping_rate=group.selected_rate,
            note=note,
            tags=list(tags),
            attributes={
                **attributes,
                "request_key": request_key,
                "shipping_group": group.group_key,
            },
        )
