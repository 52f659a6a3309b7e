"""Command-line interface for MarketSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- products: List catalog products
- chats: List the chats of a user
- messages: Show the messages of a chat
- send: Send a text message
- offer: Send a price offer
- notifications: List the notifications of a user
- mark-all-read: Mark a user's notifications as read
- clear-notifications: Delete a user's notifications
"""

from __future__ import annotations

import logging

import click

from marketsync.client.cli.catalog import products
from marketsync.client.cli.chats import chats, messages, offer, send
from marketsync.client.cli.config import resolve_db_path, setup_logging
from marketsync.client.cli.notifications import (
    clear_notifications,
    mark_all_read,
    notifications,
)


@click.group()
@click.version_option(package_name="marketsync")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the store database (default: MARKETSYNC_DB_PATH or ./marketsync.db).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, verbose: bool) -> None:
    """MarketSync - Inspect and operate a marketplace document store."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = resolve_db_path(db_path)


# Catalog commands
cli.add_command(products)

# Chat commands
cli.add_command(chats)
cli.add_command(messages)
cli.add_command(send)
cli.add_command(offer)

# Notification commands
cli.add_command(notifications)
cli.add_command(mark_all_read)
cli.add_command(clear_notifications)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "resolve_db_path",
    "setup_logging",
]
