"""
Savings Goals Package

Targets a profile saves towards and the contributions made to them.
"""

from expense_tracker.savings.service import SavingsGoalService

__all__ = ["SavingsGoalService"]
