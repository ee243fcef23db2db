"""Stock count reconciliation engine for retail branches."""

__version__ = "0.1.0"
