"""
LedgerGate - API Routers Package
"""

from ledgergate.routers import period_locks, reports
