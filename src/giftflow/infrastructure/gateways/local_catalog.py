"""JSON-file-backed catalog used when running against local data."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

from giftflow.domain.gateway.catalog import CatalogGateway, ItemSnapshot
from giftflow.domain.model.value_objects import Money
from giftflow.infrastructure.persistence._codec import write_json_atomic


class JsonCatalog(CatalogGateway):

    def __init__(self, file_path: Path, default_currency: str = "USD") -> None:
        self._file_path = file_path
        self._default_currency = default_currency
        self._ensure_file()

    # --- CatalogGateway interface ---------------------------------------------

    def get_item_snapshot(self, product_ref: str) -> ItemSnapshot | None:
        return self._load().get(product_ref)

    # --- Local administration -------------------------------------------------

    def list_all(self) -> list[ItemSnapshot]:
        return list(self._load().values())

    def save(self, snapshot: ItemSnapshot) -> None:
        items = self._load()
        items[snapshot.product_ref] = snapshot
        self._persist(items)

    # --- Serialization helpers ------------------------------------------------

    def _load(self) -> dict[str, ItemSnapshot]:
        raw = json.loads(self._file_path.read_text(encoding="utf-8"))
        return {
            item["product_ref"]: ItemSnapshot(
                product_ref=item["product_ref"],
                title=item["title"],
                price=Money(Decimal(item["price"]), item.get("currency", self._default_currency)),
                weight=Decimal(item.get("weight", "0")),
                available=int(item.get("available", 0)),
            )
            for item in raw
        }

    def _persist(self, items: dict[str, ItemSnapshot]) -> None:
        raw = [
            {
                "product_ref": s.product_ref,
                "title": s.title,
                "price": str(s.price.amount),
                "currency": s.price.currency,
                "weight": str(s.weight),
                "available": s.available,
            }
            for s in items.values()
        ]
        write_json_atomic(self._file_path, raw)

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("[]", encoding="utf-8")
