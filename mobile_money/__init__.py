"""
Mobile Money Ledger

Balance-transfer and pending-transaction workflow engine for a mobile-money
service: atomic balance adjustments, fee computation, direct transfers and
agent-settled cash-in/cash-out, using Decimal for every amount.
"""

__version__ = "1.0.0"
