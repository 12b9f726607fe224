"""
Savings Goal Service

Create goals, add money to them and list them with their progress.
Amounts go through the same validation as paid bill amounts.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.ledger import SavingsGoal
from expense_tracker.models.receipt import to_decimal
from expense_tracker.recurring import InvalidAmountError, validate_amount
from expense_tracker.services.storage import (
    SAVINGS_GOALS,
    BackendInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


class SavingsGoalService:
    """
    Usage:
        service = SavingsGoalService(backend, audit_logger)
        car = await service.create_goal(profile_id, "New Car", "50000")
        car = await service.contribute(car.id, "2500")
    """

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._audit = audit_logger or AuditLogger()

    async def create_goal(
        self,
        profile_id: UUID,
        name: str,
        target_amount: Union[Decimal, str, int, float],
        current_amount: Union[Decimal, str, int, float, None] = None,
        deadline: Optional[date] = None,
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        """
        Raises:
            InvalidAmountError: If the target is not a positive number
                or the starting amount is negative
            ValidationError: If the other fields are invalid
        """
        target = validate_amount(target_amount)
        starting = Decimal("0")
        if current_amount is not None and str(current_amount).strip():
            starting = to_decimal(str(current_amount))
            if starting is None or starting < 0:
                raise InvalidAmountError("Starting amount must be zero or more")

        fields = {"color": color} if color else {}
        goal = SavingsGoal(
            profile_id=profile_id,
            name=name.strip(),
            target_amount=target,
            current_amount=starting,
            deadline=deadline,
            **fields,
        )
        await self._backend.insert(SAVINGS_GOALS, goal.model_dump(mode="json"))

        logger.info("savings_goal_created", goal_id=str(goal.id), target=str(target))
        await self._audit.log_goal_created(goal.id, goal.name, str(target), correlation_id)
        return goal

    async def get_goal(self, goal_id: UUID) -> SavingsGoal:
        """
        Raises:
            NotFoundError: If no such goal exists
        """
        rows = await self._backend.select(SAVINGS_GOALS, {"id": str(goal_id)}, limit=1)
        if not rows:
            raise NotFoundError(f"Savings goal not found: {goal_id}")
        return SavingsGoal.model_validate(rows[0])

    async def list_goals(self, profile_ids: Iterable[Union[UUID, str]]) -> list[SavingsGoal]:
        """Goals of the given profiles, newest first."""
        rows = await self._backend.select(
            SAVINGS_GOALS,
            {"profile_id__in": [str(p) for p in profile_ids]},
            order_by="-created_at",
        )
        return [SavingsGoal.model_validate(row) for row in rows]

    async def contribute(
        self,
        goal_id: UUID,
        amount: Union[Decimal, str, int, float],
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        """
        Add money to a goal. Saving past the target is allowed.

        Raises:
            InvalidAmountError: Before any write, for a bad amount
            NotFoundError: If no such goal exists
        """
        added = validate_amount(amount)
        goal = await self.get_goal(goal_id)
        new_total = goal.current_amount + added

        await self._backend.update(
            SAVINGS_GOALS,
            {"current_amount": str(new_total)},
            {"id": str(goal_id)},
        )
        await self._audit.log_goal_contribution(goal_id, str(added), str(new_total), correlation_id)

        updated = goal.model_copy(update={"current_amount": new_total})
        if updated.is_reached and not goal.is_reached:
            logger.info("savings_goal_reached", goal_id=str(goal_id), name=goal.name)
        return updated

    async def delete_goal(self, goal_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        """
        Raises:
            NotFoundError: If no such goal exists
        """
        deleted = await self._backend.delete(SAVINGS_GOALS, {"id": str(goal_id)})
        if deleted == 0:
            raise NotFoundError(f"Savings goal not found: {goal_id}")
        await self._audit.log_goal_deleted(goal_id, correlation_id)
