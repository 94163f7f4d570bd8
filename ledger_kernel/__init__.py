"""
Ledger Kernel -- money, errors, time and logging primitives for the
invoice, debt/advance and workshop settlement engines.
"""

__version__ = "0.1.0"
