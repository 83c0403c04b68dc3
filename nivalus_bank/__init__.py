"""
Nivalus Bank

Retail banking core: accounts with PIN-gated transfers, an append-only
transaction ledger, an admin console API and a hash-chained audit trail.
"""

__version__ = "1.0.0"
