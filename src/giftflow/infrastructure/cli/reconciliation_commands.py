"""CLI commands for the operator reconciliation queue."""

from __future__ import annotations

import click

from giftflow.domain.exceptions import DomainException
from giftflow.infrastructure.bootstrap import reconciliation_queue


@click.command("list")
def reconciliation_list() -> None:
    """List open entries, oldest first."""
    entries = reconciliation_queue().list_open()
    if not entries:
        click.echo("No open reconciliation entries.")
        return

    click.echo(f"  {'ID':<32} {'Kind':<22} {'Amount':>10}  Reference")
    click.echo(f"  {'-'*80}")
    for entry in entries:
        click.echo(
            f"  {entry.id:<32} {entry.kind.value:<22} {entry.amount or '-':>10}  {entry.reference}"
        )
        click.echo(f"      {entry.reason}")


@click.command("resolve")
@click.option("--id", "entry_id", required=True, help="Entry ID to mark as handled.")
def reconciliation_resolve(entry_id: str) -> None:
    """Mark an entry as handled."""
    try:
        reconciliation_queue().resolve(entry_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Entry {entry_id} resolved.")
