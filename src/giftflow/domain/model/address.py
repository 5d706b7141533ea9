"""Shipping addresses and the people attached to an order.

A ``ShippingAddress`` is immutable once attached to a shipment group.  Its
``identity_key`` is what the grouper partitions on, so two items pointed at
"the same" address independently still land in one shipment.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


def _norm(value: str | None) -> str:
    return " ".join((value or "").split()).casefold()


@dataclass(frozen=True)
class ShippingAddress:
    first_name: str
    last_name: str
    address1: str
    city: str
    province: str
    zip: str
    country: str
    address2: str | None = None
    company: str | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def identity_key(self) -> str:
        """Stable hash of recipient name, address lines and postal code.

        Case and whitespace differences do not change the key.  Phone,
        email and company are contact details, not delivery identity.
        """
        parts = [
            _norm(self.first_name),
            _norm(self.last_name),
            _norm(self.address1),
            _norm(self.address2),
            _norm(self.zip).replace(" ", ""),
            _norm(self.country),
        ]
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
        return digest[:16]


@dataclass(frozen=True)
class BuyerInfo:
    """Who pays for (and is billed on) an external order."""

    email: str
    first_name: str
    last_name: str
    phone: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
