"""Leave balance ledger and leave request approval service."""

__version__ = "1.0.0"
