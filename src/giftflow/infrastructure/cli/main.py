import click

from giftflow.infrastructure.cli.campaign_commands import (
    campaign_cancel,
    campaign_contribute,
    campaign_show,
    campaign_start,
    campaign_sweep,
)
from giftflow.infrastructure.cli.checkout_commands import checkout_commit, checkout_quote
from giftflow.infrastructure.cli.reconciliation_commands import (
    reconciliation_list,
    reconciliation_resolve,
)
from giftflow.infrastructure.config import get_settings
from giftflow.infrastructure.logging import configure_logging


@click.group()
def cli() -> None:
    """Giftflow: registry checkout and group gifting"""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)


@cli.group()
def checkout() -> None:
    """Split-shipment checkout."""


@cli.group()
def campaign() -> None:
    """Group-gift campaigns."""


@cli.group()
def reconciliation() -> None:
    """Operator reconciliation queue."""


# Register subcommands
checkout.add_command(checkout_quote)
checkout.add_command(checkout_commit)
campaign.add_command(campaign_start)
campaign.add_command(campaign_contribute)
campaign.add_command(campaign_show)
campaign.add_command(campaign_cancel)
campaign.add_command(campaign_sweep)
reconciliation.add_command(reconciliation_list)
reconciliation.add_command(reconciliation_resolve)
