"""
Cooperative Society Service

Member savings, guarantor-backed loans, guarantor responses, weekly
repayments and late-payment fines for multiple cooperative societies,
with Decimal money handling and a hash-chained admin log.
"""

__version__ = "1.0.0"
