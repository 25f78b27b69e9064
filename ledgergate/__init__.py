"""
LedgerGate - Financial Statement Derivation and Period Locking

Derives trial balance, income statement, balance sheet and cash flow
statements from per-period account balances, gated by period locks.
"""

__version__ = "1.0.0"
