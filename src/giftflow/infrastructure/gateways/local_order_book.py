"""JSON-file-backed order platform used when running against local data.

Orders are priced from the catalog and stored with the request key they
were created for, so ``find_order`` can answer the Order Committer's
recovery lookups.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from giftflow.domain.exceptions import EntityNotFoundError, ValidationError
from giftflow.domain.gateway.catalog import CatalogGateway
from giftflow.domain.gateway.order_platform import (
    OrderPlatform,
    OrderRequest,
    PlatformOrder,
)
from giftflow.domain.model.value_objects import Money
from giftflow.infrastructure.persistence._codec import (
    address_to_raw,
    buyer_to_raw,
    file_lock,
    rate_to_raw,
    write_json_atomic,
)

FIRST_ORDER_NUMBER = 1001


class JsonOrderBook(OrderPlatform):

    def __init__(self, file_path: Path, catalog: CatalogGateway) -> None:
        self._file_path = file_path
        self._catalog = catalog
        self._ensure_file()

    # --- OrderPlatform interface ----------------------------------------------

    def create_order(self, request: OrderRequest) -> PlatformOrder:
        total = self._price(request)
        with self._locked():
            orders = self._load_raw()
            number = FIRST_ORDER_NUMBER + len(orders)
            raw = {
                "id": uuid.uuid4().hex,
                "number": f"#{number}",
                "request_key": request.request_key,
                "total_price": str(total.amount),
                "currency": total.currency,
                "lines": [
                    {
                        "product_ref": line.product_ref,
                        "quantity": line.quantity,
                        "attributes": dict(line.attributes),
                    }
                    for line in request.lines
                ],
                "shipping_address": address_to_raw(request.shipping_address),
                "buyer": buyer_to_raw(request.buyer),
                "payment_ref": request.payment_ref,
                "shipping_rate": rate_to_raw(request.shipping_rate),
                "note": request.note,
                "tags": list(request.tags),
                "attributes": dict(request.attributes),
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            orders.append(raw)
            write_json_atomic(self._file_path, orders)
        return self._to_domain(raw)

    def find_order(self, request_key: str) -> PlatformOrder | None:
        for raw in self._load_raw():
            if raw["request_key"] == request_key:
                return self._to_domain(raw)
        return None

    def annotate_order(self, order_id: str, note: str, attributes: dict[str, str]) -> None:
        with self._locked():
            orders = self._load_raw()
            for raw in orders:
                if raw["id"] == order_id:
                    raw["note"] = f"{raw['note']}\n{note}".strip()
                    raw["attributes"].update(attributes)
                    break
            else:
                raise EntityNotFoundError(f"Order {order_id} not found")
            write_json_atomic(self._file_path, orders)

    # --- Local administration -------------------------------------------------

    def list_all(self) -> list[dict]:
        return self._load_raw()

    # --- Internal helpers -----------------------------------------------------

    def _price(self, request: OrderRequest) -> Money:
        if not request.lines:
            raise ValidationError("Order has no line items")
        total: Money | None = None
        for line in request.lines:
            snapshot = self._catalog.get_item_snapshot(line.product_ref)
            if snapshot is None:
                raise ValidationError(f"Unknown product '{line.product_ref}'")
            if snapshot.available < line.quantity:
                raise ValidationError(
                    f"Insufficient stock for '{snapshot.title}': "
                    f"requested {line.quantity}, available {snapshot.available}"
                )
            line_total = snapshot.price * line.quantity
            total = line_total if total is None else total + line_total
        if request.shipping_rate is not None:
            total = total + request.shipping_rate.price
        return total

    @staticmethod
    def _to_domain(raw: dict) -> PlatformOrder:
        return PlatformOrder(
            id=raw["id"],
            number=raw["number"],
            total_price=Money(Decimal(raw["total_price"]), raw.get("currency", "USD")),
        )

    def _load_raw(self) -> list[dict]:
        return json.loads(self._file_path.read_text(encoding="utf-8"))

    def _locked(self):
        return file_lock(self._file_path.with_name(f".{self._file_path.name}.lock"))

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("[]", encoding="utf-8")
