"""
Billing Kernel - clinic billing ledger.

A bill ledger for clinic invoicing with:
- Integer minor-unit money with a single rounding rule
- Derived totals recomputed idempotently after every mutation
- Guarded lifecycle transitions (issue, void, write-off, cancel)
- Per-bill serialized payment application with optimistic commits
"""

__version__ = "0.1.0"
