"""Configuration utilities for the MarketSync CLI.

This module provides shared functions used across CLI commands: logging
setup, store resolution and running manager coroutines.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click

from marketsync.client import Marketplace
from marketsync.core.config import ENV_PREFIX, MarketConfig
from marketsync.core.errors import MarketSyncError

T = TypeVar("T")

DEFAULT_DB_PATH = "marketsync.db"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO, log_path: Path | None = None) -> None:
    """Configure logging for the marketsync package.

    Args:
        level: Log level of the ``marketsync`` logger.
        log_path: Optional file receiving the same records as stderr.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("marketsync")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_path is not None:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def resolve_db_path(db_path: str | None) -> Path:
    """Pick the store file from the option, the environment, or the default."""
    return Path(db_path or os.environ.get(f"{ENV_PREFIX}DB_PATH", DEFAULT_DB_PATH))


def run_with_market(
    ctx: click.Context, action: Callable[[Marketplace], Awaitable[T]]
) -> T:
    """Open the marketplace from the CLI context and run one action.

    Marketplace errors are printed as ``Error: ...`` and exit with status 1.
    """
    config = MarketConfig.from_env()
    config.db_path = ctx.obj["db_path"]

    async def main() -> T:
        market = Marketplace.open(config)
        try:
            return await action(market)
        finally:
            await market.aclose()

    try:
        return asyncio.run(main())
    except MarketSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
