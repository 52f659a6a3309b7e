"""MarketSync - Live marketplace catalog, chat and notifications over a document store."""

__version__ = "0.1.0"
