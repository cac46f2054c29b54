"""
BankEase

Mobile banking backend: phone + PIN accounts, atomic peer-to-peer transfers,
bill payments and paginated statements, all amounts in Decimal.
"""

__version__ = "1.0.0"
