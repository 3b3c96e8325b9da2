"""IPO listing sync: source adapters, reconciliation engine and read API."""

__version__ = "0.1.0"
