# charityhub/cli.py
"""
Operator commands, registered on the `flask` CLI by the app factory:

  flask seed-stats        → create the impact stats row if missing
  flask storage-status    → which backend is serving, DB connectivity
  flask donate            → walk the donation wizard against a running server
"""

import json

import click
from flask import Flask
from flask.cli import with_appcontext

from charityhub.context import get_context
from charityhub.domain import CHANNELS, FREQUENCIES


@click.command("seed-stats")
@with_appcontext
def seed_stats():
    """🌱 Seed the impact stats row (no-op when it already exists)."""
    ctx = get_context()
    if ctx.storage.ensure_seeded():
        click.echo("✅ Impact stats initialized.")
    else:
        click.echo("🔁 Impact stats already present (or database offline); nothing to do.")
    click.echo(json.dumps(ctx.storage.get_stats().as_dict(), indent=2))


@click.command("storage-status")
@with_appcontext
def storage_status():
    """Show the active storage backend and database connectivity."""
    status = get_context().storage.status()
    click.echo(json.dumps(status, indent=2, sort_keys=True))
    if status.get("connected") is False:
        click.echo("⚠️  Database offline: writes are held in memory and lost on restart.")


@click.command("donate")
@click.option("--server", default="http://127.0.0.1:5000", show_default=True, help="Base URL of a running CharityHub server.")
@click.option("--amount", prompt="Donation amount", help="Amount in currency units.")
@click.option("--frequency", type=click.Choice(FREQUENCIES), default="once", show_default=True, prompt=True)
@click.option("--channel", type=click.Choice(CHANNELS), default="online", show_default=True, prompt=True)
@click.option("--reference", default="", help="Optional reference shown next to the donor name.")
@click.option(
    "--method",
    type=click.Choice(["card", "paypal_redirect", "stripe_redirect"]),
    default="card",
    show_default=True,
    prompt=True,
)
def donate(server, amount, frequency, channel, reference, method):
    """💳 Interactive donation against a running server (same flow as the web form)."""
    from charityhub.client import DonationApiClient, DonationFormController

    controller = DonationFormController(
        DonationApiClient(server),
        notify=lambda note: click.echo(f"[{note.level}] {note.message}"),
    )
    controller.set_custom_amount(amount)
    controller.set_frequency(frequency)
    controller.set_public_channel(channel)
    controller.set_reference(reference)

    if not controller.goto_step(2):
        raise SystemExit(1)
    click.echo(f"Confirm amount: {controller.confirm_amount}")

    if method != "card":
        url = controller.donate_redirect(method)
        if not url:
            raise SystemExit(1)
        click.echo(f"➡️  Continue at: {url}")
        return

    name = click.prompt("Cardholder name")
    number = click.prompt("Card number")
    expiry = click.prompt("Expiry (MM/YY)")
    cvv = click.prompt("CVV", hide_input=True)

    if controller.submit_donation(name, number, expiry, cvv):
        click.echo(f"✅ {controller.message} ({controller.transaction_id})")
        click.echo(json.dumps(controller.stats, indent=2))
    else:
        click.echo(f"❌ {controller.message or 'Donation not submitted.'}")
        raise SystemExit(1)


def register_cli(app: Flask) -> None:
    for command in (seed_stats, storage_status, donate):
        app.cli.add_command(command)
