"""
Envelope Ledger - the money core of an envelope budgeting app.

Transfers between envelopes, transaction splits, income allocation plans,
credit card holding per billing cycle, debt sync with payoff projections,
and income reconciliation.
"""

__version__ = "0.1.0"
