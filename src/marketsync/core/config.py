"""Configuration for marketsync.

This module defines the configuration used to open a Marketplace: which
document store backend to use and where push notifications are dispatched.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "MARKETSYNC_"


@dataclass
class MarketConfig:
    """Configuration for a Marketplace instance.

    Attributes:
        db_path: SQLite file for the document store. None selects the
            in-memory store.
        push_url: URL of the push-dispatch callable function. None disables
            push delivery (notifications are still persisted).
        push_api_key: Optional bearer key sent to the push endpoint.
        timeout: Push request timeout in seconds.
    """

    db_path: Path | None = None
    push_url: str | None = None
    push_api_key: str | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        """Normalize paths and URLs."""
        if self.db_path is not None:
            self.db_path = Path(self.db_path)
        if self.push_url:
            self.push_url = self.push_url.rstrip("/")
        else:
            self.push_url = None

    @classmethod
    def from_env(cls) -> MarketConfig:
        """Build configuration from MARKETSYNC_* environment variables.

        Returns:
            MarketConfig with values from the environment, defaults otherwise.
        """
        db_path = os.environ.get(f"{ENV_PREFIX}DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else None,
            push_url=os.environ.get(f"{ENV_PREFIX}PUSH_URL"),
            push_api_key=os.environ.get(f"{ENV_PREFIX}PUSH_API_KEY"),
            timeout=float(os.environ.get(f"{ENV_PREFIX}TIMEOUT", "30.0")),
        )
