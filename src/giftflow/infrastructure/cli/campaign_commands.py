"""CLI commands for group-gift campaigns."""

from __future__ import annotations

from pathlib import Path

import click

from giftflow.application.dto import CampaignConstraints, CampaignProgressDTO
from giftflow.domain.exceptions import DomainException, ExceedsTarget
from giftflow.domain.model.address import BuyerInfo
from giftflow.domain.model.campaign import Contributor
from giftflow.infrastructure.bootstrap import (
    campaign_progress_handler,
    cancel_campaign_handler,
    contribute_handler,
    start_campaign_handler,
    sweep_handler,
)
from giftflow.infrastructure.cli._parsing import load_address, split_name


def _display_progress(dto: CampaignProgressDTO) -> None:
    """Shared formatting for displaying a campaign."""
    click.echo(f"Campaign {dto.campaign_id}  (status={dto.status})")
    click.echo(f"Title:     {dto.title}")
    click.echo(f"Raised:    {dto.current} of {dto.target}  ({dto.percent}%)")
    click.echo(f"Remaining: {dto.remaining}")
    if dto.days_remaining is not None:
        click.echo(f"Days left: {dto.days_remaining}")
    click.echo(f"Contributors: {dto.contributor_count}")
    for line in dto.contributors:
        click.echo(f"  - {line}")


@click.command("start")
@click.option("--title", required=True, help="Campaign title.")
@click.option("--product", "product_ref", required=True, help="Catalog product reference.")
@click.option("--item-id", default=None, help="Registry item id (defaults to the product).")
@click.option("--quantity", default=1, type=int, show_default=True, help="Units to fund.")
@click.option("--target", default=None, help="Target amount (defaults to the item total).")
@click.option("--organizer-email", required=True, help="Organizer email.")
@click.option("--organizer-name", required=True, help="Organizer full name.")
@click.option(
    "--ship-to", "ship_to_path", required=True,
    type=click.Path(exists=True, path_type=Path), help="Ship-to address JSON file.",
)
@click.option("--min", "min_contribution", default=None, help="Minimum contribution.")
@click.option("--max-contributors", default=None, type=int, help="Contributor cap.")
@click.option("--deadline", default=None, help="ISO-8601 deadline with timezone.")
@click.option("--no-anonymous", is_flag=True, default=False, help="Reject anonymous gifts.")
@click.option("--manual-order", is_flag=True, default=False, help="Do not order on completion.")
def campaign_start(
    title: str,
    product_ref: str,
    item_id: str | None,
    quantity: int,
    target: str | None,
    organizer_email: str,
    organizer_name: str,
    ship_to_path: Path,
    min_contribution: str | None,
    max_contributors: int | None,
    deadline: str | None,
    no_anonymous: bool,
    manual_order: bool,
) -> None:
    """Start a new group-gift campaign."""
    first, last = split_name(organizer_name)
    constraints = CampaignConstraints(
        min_contribution=min_contribution,
        max_contributors=max_contributors,
        deadline=deadline,
        allow_anonymous=not no_anonymous,
        auto_order_on_target=not manual_order,
    )

    try:
        dto = start_campaign_handler().handle(
            title=title,
            item_id=item_id or product_ref,
            product_ref=product_ref,
            organizer=BuyerInfo(email=organizer_email, first_name=first, last_name=last),
            ship_to=load_address(ship_to_path),
            quantity=quantity,
            target_amount=target,
            constraints=constraints,
        )
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_progress(dto)


@click.command("contribute")
@click.option("--id", "campaign_id", required=True, help="Campaign ID.")
@click.option("--amount", required=True, help="Contribution amount, e.g. 25.00.")
@click.option("--name", required=True, help="Contributor name.")
@click.option("--email", required=True, help="Contributor email.")
@click.option("--contributor-id", default=None, help="Customer id, if known.")
@click.option("--anonymous", is_flag=True, default=False, help="Hide the contributor's name.")
@click.option("--message", default=None, help="Message to the recipient.")
@click.option("--payment-ref", default=None, help="Payment reference to charge.")
def campaign_contribute(
    campaign_id: str,
    amount: str,
    name: str,
    email: str,
    contributor_id: str | None,
    anonymous: bool,
    message: str | None,
    payment_ref: str | None,
) -> None:
    """Contribute to a campaign."""
    handler = contribute_handler()

    try:
        dto = handler.handle(
            campaign_id,
            amount,
            Contributor(name=name, email=email, id=contributor_id),
            anonymous=anonymous,
            message=message,
            payment_ref=payment_ref,
        )
    except ExceedsTarget as exc:
        raise click.ClickException(f"{exc} (you can still contribute up to {exc.remaining})")
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Contribution {dto.id} of {dto.amount} from {dto.display_name} accepted.")
    click.echo(f"Campaign {dto.campaign_id}: {dto.current} raised, {dto.remaining} to go "
               f"(status={dto.campaign_status})")


@click.command("show")
@click.option("--id", "campaign_id", required=True, help="Campaign ID to display.")
def campaign_show(campaign_id: str) -> None:
    """Show the progress of a campaign."""
    handler = campaign_progress_handler()

    try:
        dto = handler.handle(campaign_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_progress(dto)


@click.command("cancel")
@click.option("--id", "campaign_id", required=True, help="Campaign ID to cancel.")
def campaign_cancel(campaign_id: str) -> None:
    """Cancel an active campaign (contributions are refunded)."""
    handler = cancel_campaign_handler()

    try:
        dto = handler.handle(campaign_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Campaign {dto.campaign_id} cancelled.")


@click.command("sweep")
def campaign_sweep() -> None:
    """Expire overdue campaigns and finish pending orders and refunds."""
    handler = sweep_handler()

    try:
        report = handler.handle()
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Expired:   {len(report.expired)}")
    click.echo(f"Fulfilled: {len(report.fulfilled)}")
    click.echo(f"Refunded:  {len(report.refunded)}")
    click.echo(f"Failed:    {len(report.failed)}")
    for campaign_id in report.failed:
        click.echo(f"  ! {campaign_id}")
