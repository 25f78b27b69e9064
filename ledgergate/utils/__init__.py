"""
LedgerGate - Utilities Package
"""
