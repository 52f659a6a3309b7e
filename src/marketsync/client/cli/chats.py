"""Chat commands for the MarketSync CLI.

Commands:
- chats: List the chats of a user
- messages: Show the messages of a chat
- send: Send a text message
- offer: Send a price offer
"""

from __future__ import annotations

import click

from marketsync.client import Marketplace
from marketsync.client.cli.config import run_with_market
from marketsync.core.models import Chat, Message
from marketsync.core.types import MessageType


def format_message(message: Message) -> str:
    """One-line rendering of a message."""
    stamp = message.created_at.strftime("%Y-%m-%d %H:%M:%S")
    if message.type == MessageType.OFFER:
        return f"[{stamp}] {message.sender_id} offers {message.content}"
    return f"[{stamp}] {message.sender_id}: {message.content}"


@click.command()
@click.argument("user_id")
@click.pass_context
def chats(ctx: click.Context, user_id: str) -> None:
    """List the chats USER_ID takes part in, newest first."""

    async def action(market: Marketplace) -> list[Chat]:
        stream = market.chats.list_chats(user_id)
        async with stream:
            return await stream.next()

    found = run_with_market(ctx, action)
    if not found:
        click.echo("No chats.")
        return
    for chat in found:
        last = chat.last_message_at.isoformat() if chat.last_message_at else "-"
        click.echo(
            f"{chat.id}  product={chat.product_id}  buyer={chat.buyer_id}  "
            f"seller={chat.seller_id}  last={last}"
        )


@click.command()
@click.argument("chat_id")
@click.pass_context
def messages(ctx: click.Context, chat_id: str) -> None:
    """Show the messages of CHAT_ID, oldest first."""

    async def action(market: Marketplace) -> list[Message]:
        stream = market.messages.subscribe(chat_id)
        async with stream:
            return await stream.next()

    for message in run_with_market(ctx, action):
        click.echo(format_message(message))


@click.command()
@click.argument("chat_id")
@click.argument("sender_id")
@click.argument("content")
@click.pass_context
def send(ctx: click.Context, chat_id: str, sender_id: str, content: str) -> None:
    """Send a text message to CHAT_ID as SENDER_ID."""

    async def action(market: Marketplace) -> Message:
        return await market.messages.send(chat_id, sender_id, content)

    message = run_with_market(ctx, action)
    click.echo(f"Sent message {message.id}")


@click.command()
@click.argument("chat_id")
@click.argument("sender_id")
@click.argument("amount", type=float)
@click.pass_context
def offer(ctx: click.Context, chat_id: str, sender_id: str, amount: float) -> None:
    """Offer AMOUNT in CHAT_ID as SENDER_ID."""

    async def action(market: Marketplace) -> Message:
        return await market.messages.send_offer(chat_id, sender_id, amount)

    message = run_with_market(ctx, action)
    click.echo(f"Sent offer {message.content} ({message.id})")
