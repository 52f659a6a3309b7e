"""Catalog commands for the MarketSync CLI.

Commands:
- products: List products matching filters
"""

from __future__ import annotations

import click

from marketsync.client import Marketplace, ProductFilters
from marketsync.client.cli.config import run_with_market
from marketsync.core.geo import GeoRadius
from marketsync.core.models import Product
from marketsync.core.types import ProductCategory


def format_product(product: Product) -> str:
    """One-line summary of a product."""
    sponsored = " [sponsored]" if product.is_sponsored else ""
    return (
        f"{product.id}  {product.name}  {product.price:.2f}  "
        f"{product.category.value}  rating={product.rating:.1f}{sponsored}"
    )


@click.command()
@click.option(
    "--category",
    type=click.Choice([c.value for c in ProductCategory]),
    default=None,
    help="Only products in this category.",
)
@click.option("--seller", "seller_id", default=None, help="Only products of this seller.")
@click.option("--min-price", type=float, default=None, help="Minimum price (inclusive).")
@click.option("--max-price", type=float, default=None, help="Maximum price (inclusive).")
@click.option(
    "--near",
    type=(float, float),
    default=None,
    metavar="LAT LON",
    help="Center of the search area.",
)
@click.option("--radius", type=float, default=10.0, help="Search radius in km (with --near).")
@click.pass_context
def products(
    ctx: click.Context,
    category: str | None,
    seller_id: str | None,
    min_price: float | None,
    max_price: float | None,
    near: tuple[float, float] | None,
    radius: float,
) -> None:
    """List products, newest first.

    Examples:

        # Electronics under 200
        marketsync products --category electronics --max-price 200

        # Everything within 25 km of Madrid
        marketsync products --near 40.4168 -3.7038 --radius 25
    """
    filters = ProductFilters(
        category=ProductCategory(category) if category else None,
        seller_id=seller_id,
        min_price=min_price,
        max_price=max_price,
        location=GeoRadius(near[0], near[1], radius) if near else None,
    )

    async def action(market: Marketplace) -> list[Product]:
        stream = market.catalog.list_products(filters)
        async with stream:
            return await stream.next()

    found = run_with_market(ctx, action)
    if not found:
        click.echo("No products found.")
        return
    for product in found:
        click.echo(format_product(product))
