"""
Guild Bank

A small GP ledger and loan accounting engine: per-account balances with
append-only transaction histories, a separate loan book with its own
lifecycle, and a single JSON snapshot persisted after every mutation.
"""

__version__ = "1.0.0"
