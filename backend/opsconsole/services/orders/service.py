"""
Order service orchestrating status updates.

This module implements the OrderService class, which coordinates the state
machine, the repository and the tracking ledger for a single status change:
read the order, decide the transition, then persist the new status and its
tracking entry as one unit of work.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.core.logging import get_logger, log_performance
from opsconsole.database.models.order import Order, TrackingEntry
from opsconsole.services.orders.enums import OrderStatus
from opsconsole.services.orders.repository import (
    OrderNotFoundError,
    OrderRepository,
    OrderRepositoryError,
)
from opsconsole.services.orders.state_machine import (
    InvalidTransitionError,
    OrderStateMachine,
)

logger = get_logger(__name__)


class OrderService:
    """
    Order service orchestrating the status lifecycle.

    Attributes:
        session: Database session shared by repository and ledger
        repository: Order repository for data access
        state_machine: Transition policy
    """

    def __init__(
        self,
        session: AsyncSession,
        state_machine: Optional[OrderStateMachine] = None,
        repository: Optional[OrderRepository] = None,
    ):
        """
        Initialize order service.

        Args:
            session: Async database session
            state_machine: Transition policy, defaults to configured one
            repository: Repository override
        """
        self.session = session
        self.repository = repository or OrderRepository(session)
        self.state_machine = state_machine or OrderStateMachine()

    async def create_order(
        self,
        status: OrderStatus = OrderStatus.PENDING,
        order_id: Optional[uuid.UUID] = None,
    ) -> dict[str, Any]:
        """Create an order and return its summary."""
        order = await self.repository.create_order(status=status, order_id=order_id)
        return self._format_order(order)

    async def update_status(
        self,
        order_id: uuid.UUID,
        requested_status: OrderStatus,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Move an order to ``requested_status`` and record the change.

        Either the status is updated and exactly one tracking entry is
        appended, or nothing is written at all.

        Args:
            order_id: Order identifier
            requested_status: Target status
            title: Optional tracking entry title
            body: Optional tracking entry body

        Returns:
            Dictionary with the updated order and the appended tracking entry

        Raises:
            OrderNotFoundError: If order not found
            InvalidTransitionError: If the transition is not permitted
            WriteConflictError: If the order changed concurrently
            OrderPersistenceError: If the write fails
        """
        with log_performance(
            logger,
            "order_status_update",
            order_id=str(order_id),
            requested_status=requested_status.value,
        ):
            try:
                order = await self.repository.get_order_for_update(order_id)
            except OrderNotFoundError:
                logger.warning("Order not found for status update", order_id=str(order_id))
                raise

            previous_status = order.status
            expected_version = order.version

            try:
                new_status = self.state_machine.transition(previous_status, requested_status)
            except InvalidTransitionError as e:
                await self.session.rollback()
                logger.warning(
                    "Invalid order status transition",
                    order_id=str(order_id),
                    current_status=previous_status.value,
                    requested_status=requested_status.value,
                    allowed_transitions=e.context.get("allowed_transitions"),
                )
                raise

            # Nothing may touch the database after the commit below.
            result = self._format_order(order)
            changed_at = datetime.now(timezone.utc)

            try:
                entry = await self.repository.write_status_and_append_entry(
                    order_id=order_id,
                    expected_version=expected_version,
                    new_status=new_status,
                    title=title,
                    body=body,
                    changed_at=changed_at,
                )
            except OrderRepositoryError as e:
                logger.warning(
                    "Order status update not applied",
                    order_id=str(order_id),
                    requested_status=requested_status.value,
                    error_type=type(e).__name__,
                    context=e.context,
                )
                raise

        result.update(
            status=new_status.value,
            version=expected_version + 1,
            updated_at=changed_at.isoformat(),
        )

        logger.info(
            "Order status updated",
            order_id=str(order_id),
            old_status=previous_status.value,
            new_status=new_status.value,
            version=result["version"],
            sequence=entry.sequence,
        )

        result["tracking_entry"] = self._format_entry(entry)
        return result

    async def get_tracking_history(self, order_id: uuid.UUID) -> list[dict[str, Any]]:
        """
        Get an order's tracking entries, oldest first.

        Raises:
            OrderNotFoundError: If order not found
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        entries = await self.repository.list_entries(order_id)
        return [self._format_entry(entry) for entry in entries]

    @staticmethod
    def _format_order(order: Order) -> dict[str, Any]:
        data = order.to_dict()
        data["order_id"] = data.pop("id")
        return data

    @staticmethod
    def _format_entry(entry: TrackingEntry) -> dict[str, Any]:
        return entry.to_dict()
