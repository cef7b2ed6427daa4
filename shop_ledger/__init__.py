"""
Shop Ledger - Source Package

Bookkeeping for a small shop: record income and expenses, see the
month at a glance, move the books between devices, and ask an AI for
a short summary.

DESIGN PRINCIPLES:
1. A user only ever sees and changes their own records
2. The ledger is append-only (create and delete, never edit)
3. Every number on screen is derived, never stored
4. Imports add, they never replace
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Shop Ledger Team"
