"""
LedgerGate - Statutory Templates

Chart of accounts and the declarative layouts of the income statement,
balance sheet and cash flow statement.
"""
