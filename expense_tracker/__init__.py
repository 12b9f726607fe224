"""
Expense Tracker - Source Package

A personal and family expense tracker. Transactions, recurring bills,
grocery receipts and budgets are grouped into profiles that can be
shared between household members.

DESIGN PRINCIPLES:
1. OCR suggests → Human corrects → System persists
2. Fail early, fail visibly
3. Every profile is passed explicitly, never read from global state
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
