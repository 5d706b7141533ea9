"""CLI commands for split-shipment checkout."""

from __future__ import annotations

from pathlib import Path

import click

from giftflow.domain.exceptions import DomainException
from giftflow.domain.model.shipment import ShipmentGroup
from giftflow.infrastructure.bootstrap import (
    commit_checkout_handler,
    group_and_quote_handler,
)
from giftflow.infrastructure.cli._parsing import (
    apply_rate_choices,
    load_cart,
    parse_rate_choices,
)


def _display_groups(groups: list[ShipmentGroup]) -> None:
    for index, group in enumerate(groups, start=1):
        address = group.address
        click.echo(
            f"Shipment {index}  [{group.group_key}]  ({group.label})  "
            f"-> {address.full_name}, {address.city}, {address.country}"
        )
        click.echo(f"  {'Item':<24} {'Qty':>5} {'Total':>10}")
        click.echo(f"  {'-'*41}")
        for cart_item in group.items:
            item = cart_item.item
            click.echo(
                f"  {item.title:<24} {item.quantity.value:>5} {str(item.line_total):>10}"
            )
        click.echo(f"  {'-'*41}")
        click.echo(f"  {'Value':<30} {str(group.total_value):>10}")
        click.echo(f"  {'Weight (kg)':<30} {str(group.total_weight):>10}")
        click.echo("  Rates:")
        for rate in group.candidate_rates:
            marker = "*" if rate is group.selected_rate else " "
            fallback = "  (fallback)" if rate.is_fallback else ""
            click.echo(
                f"   {marker} {rate.id:<12} {rate.title:<22} {str(rate.price):>10}  "
                f"by {rate.estimated_delivery.isoformat()}{fallback}"
            )
        click.echo()


@click.command("quote")
@click.option(
    "--cart", "cart_path", required=True, type=click.Path(exists=True, path_type=Path),
    help="Cart JSON file.",
)
def checkout_quote(cart_path: Path) -> None:
    """Group a cart by destination and quote shipping for each group."""
    cart = load_cart(cart_path)
    handler = group_and_quote_handler()

    try:
        groups = handler.handle(cart.items, cart.owner_address, cart.buyer_address)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_groups(groups)


@click.command("commit")
@click.option(
    "--cart", "cart_path", required=True, type=click.Path(exists=True, path_type=Path),
    help="Cart JSON file.",
)
@click.option("--checkout-id", required=True, help="Idempotency scope for this checkout.")
@click.option("--payment-ref", required=True, help="Payment reference to bill.")
@click.option(
    "--rate", "rates", multiple=True,
    help="Rate choice as 'GROUP=RATE' (group number or key). Defaults to the cheapest.",
)
@click.option("--synchronize", is_flag=True, default=False, help="Coordinate delivery dates.")
def checkout_commit(
    cart_path: Path,
    checkout_id: str,
    payment_ref: str,
    rates: tuple[str, ...],
    synchronize: bool,
) -> None:
    """Create one order per shipment group.

    Running the same checkout id again never creates duplicate orders.
    """
    cart = load_cart(cart_path)
    choices = parse_rate_choices(rates)

    try:
        groups = group_and_quote_handler().handle(
            cart.items, cart.owner_address, cart.buyer_address
        )
        apply_rate_choices(groups, choices)
        result = commit_checkout_handler().handle(
            checkout_id=checkout_id,
            groups=groups,
            buyer=cart.buyer,
            payment_ref=payment_ref,
            registry_id=cart.registry_id,
            synchronize=synchronize,
            special_instructions=cart.special_instructions,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Checkout {result.checkout_id}: {len(result.receipts)} order(s)")
    click.echo(f"  {'Order':<10} {'Status':<10} {'Total':>10}  {'Delivery':<10}")
    click.echo(f"  {'-'*44}")
    for receipt in result.receipts:
        click.echo(
            f"  {receipt.order_number or '-':<10} {receipt.status:<10} "
            f"{receipt.total_price or '-':>10}  {receipt.estimated_delivery or '-':<10}"
        )
    if synchronize:
        state = "coordinated" if result.coordinated else "NOT fully coordinated"
        click.echo(f"Deliveries {state}.")
