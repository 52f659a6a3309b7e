"""Notification commands for the MarketSync CLI.

Commands:
- notifications: List the notifications of a user
- mark-all-read: Mark every unread notification as read
- clear-notifications: Delete every notification
"""

from __future__ import annotations

import click

from marketsync.client import Marketplace
from marketsync.client.cli.config import run_with_market
from marketsync.core.models import Notification


@click.command()
@click.argument("user_id")
@click.option("--unread", is_flag=True, help="Only unread notifications.")
@click.pass_context
def notifications(ctx: click.Context, user_id: str, unread: bool) -> None:
    """List the notifications of USER_ID, newest first."""

    async def action(market: Marketplace) -> list[Notification]:
        stream = market.notifications.subscribe(user_id)
        async with stream:
            return await stream.next()

    found = run_with_market(ctx, action)
    if unread:
        found = [n for n in found if not n.read]
    if not found:
        click.echo("No notifications.")
        return
    for notification in found:
        marker = " " if notification.read else "*"
        click.echo(
            f"{marker} {notification.id}  [{notification.type.value}] "
            f"{notification.title}: {notification.message}"
        )


@click.command("mark-all-read")
@click.argument("user_id")
@click.pass_context
def mark_all_read(ctx: click.Context, user_id: str) -> None:
    """Mark every unread notification of USER_ID as read."""

    async def action(market: Marketplace) -> int:
        return await market.notifications.mark_all_read(user_id)

    count = run_with_market(ctx, action)
    click.echo(f"Marked {count} notifications as read.")


@click.command("clear-notifications")
@click.argument("user_id")
@click.confirmation_option(prompt="Delete all notifications of this user?")
@click.pass_context
def clear_notifications(ctx: click.Context, user_id: str) -> None:
    """Delete every notification of USER_ID."""

    async def action(market: Marketplace) -> int:
        return await market.notifications.clear_all(user_id)

    count = run_with_market(ctx, action)
    click.echo(f"Deleted {count} notifications.")
