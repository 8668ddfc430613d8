"""Payment gateway webhook endpoint and order reconciliation."""

__version__ = "0.1.0"
