"""Domain service: Address Resolver.

Validates and normalizes shipping addresses, and decides which address a
cart line ships to based on its shipping preference.
"""

from __future__ import annotations

import re
from dataclasses import replace

from giftflow.domain.exceptions import ValidationError
from giftflow.domain.model.address import ShippingAddress
from giftflow.domain.model.item import CartItem, ShippingPreference

_REQUIRED_FIELDS = ("first_name", "last_name", "address1", "city", "zip", "country")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


class AddressResolver:

    def normalize(self, address: ShippingAddress, role: str = "shipping") -> ShippingAddress:
        """Return a cleaned copy of *address* or raise ValidationError.

        Collapses whitespace everywhere, upper-cases country, province and
        postal code, and checks required fields and the contact email.
        """
        missing = [
            name for name in _REQUIRED_FIELDS if not _clean(getattr(address, name))
        ]
        if missing:
            raise ValidationError(
                f"Invalid {role} address: missing {', '.join(missing)}"
            )

        email = _clean(address.email)
        if email is not None and not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid {role} address: bad email '{email}'")

        return replace(
            address,
            first_name=_clean(address.first_name),
            last_name=_clean(address.last_name),
            address1=_clean(address.address1),
            address2=_clean(address.address2),
            city=_clean(address.city),
            province=(_clean(address.province) or "").upper(),
            zip=(_clean(address.zip) or "").upper(),
            country=(_clean(address.country) or "").upper(),
            company=_clean(address.company),
            phone=_clean(address.phone),
            email=email,
        )

    def resolve(
        self,
        cart_item: CartItem,
        owner_address: ShippingAddress,
        buyer_address: ShippingAddress,
    ) -> ShippingAddress:
        """Pick the destination for one cart line.

        ``owner_address`` and ``buyer_address`` are expected to be normalized
        already; custom addresses are normalized here.
        """
        preference = cart_item.preference
        if preference == ShippingPreference.RECIPIENT:
            return owner_address
        if preference == ShippingPreference.GIVER:
            return buyer_address
        if cart_item.custom_address is None:
            raise ValidationError(
                f"Custom shipping address required for item '{cart_item.item.item_id}'"
            )
        return self.normalize(
            cart_item.custom_address, role=f"custom ({cart_item.item.item_id})"
        )
