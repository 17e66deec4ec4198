"""Game server marketplace billing: credit ledger and split billing."""

__version__ = "0.1.0"
