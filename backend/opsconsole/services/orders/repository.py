"""
Order data access repository with transaction support.

This module implements the OrderRepository class: the persistence boundary
for order status and the tracking ledger. The combined status write and
ledger append run in one transaction guarded by the order's version column,
so a status change is either fully recorded or not recorded at all.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.core.logging import get_logger
from opsconsole.database.models.order import Order, TrackingEntry
from opsconsole.services.orders.enums import OrderStatus
from opsconsole.services.orders.ledger import TrackingLedger

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when order is not found."""

    pass


class OrderPersistenceError(OrderRepositoryError):
    """Raised when a read or write fails at the database.

    Nothing from the failed unit of work is left behind, so the whole
    operation can be retried by the caller.
    """

    pass


class WriteConflictError(OrderRepositoryError):
    """Raised when the order changed between read and write."""

    pass


class OrderRepository:
    """
    Repository for order status and tracking ledger persistence.

    The repository owns transaction boundaries for writes: it commits on
    success and rolls back on any failure before raising.
    """

    def __init__(self, session: AsyncSession, ledger: Optional[TrackingLedger] = None):
        """
        Initialize order repository.

        Args:
            session: Async database session
            ledger: Tracking ledger bound to the same session
        """
        self.session = session
        self.ledger = ledger or TrackingLedger(session)

    async def create_order(
        self,
        status: OrderStatus = OrderStatus.PENDING,
        order_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Create an order in its initial status.

        No tracking entry is written; the ledger starts with the first
        accepted transition.

        Args:
            status: Initial status
            order_id: Optional explicit identifier

        Returns:
            Created order

        Raises:
            OrderPersistenceError: If the insert fails
        """
        now = datetime.now(timezone.utc)
        order = Order(
            id=order_id or uuid.uuid4(),
            status=status,
            version=1,
            created_at=now,
            updated_at=now,
        )

        try:
            self.session.add(order)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order creation failed",
                order_id=str(order.id),
                error=str(e),
            )
            raise OrderPersistenceError(
                "Order creation failed due to database error",
                order_id=str(order.id),
                error=str(e),
            ) from e

        logger.info("Order created", order_id=str(order.id), status=status.value)
        return order

    async def get_order_by_id(
        self,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Order]:
        """
        Get order by ID.

        Args:
            order_id: Order identifier
            for_update: Lock the row for the rest of the transaction on
                engines that support ``SELECT ... FOR UPDATE``

        Returns:
            Order if found, None otherwise

        Raises:
            OrderPersistenceError: If query fails
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise OrderPersistenceError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

        return result.scalar_one_or_none()

    async def get_order_for_update(self, order_id: uuid.UUID) -> Order:
        """
        Load an order to decide a status change on it.

        The row stays locked until the transaction ends on PostgreSQL.

        Raises:
            OrderNotFoundError: If order not found
            OrderPersistenceError: If query fails
        """
        order = await self.get_order_by_id(order_id, for_update=True)
        if order is None:
            await self.session.rollback()
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def read_order_status(self, order_id: uuid.UUID) -> OrderStatus:
        """
        Read the current status of an order.

        Raises:
            OrderNotFoundError: If order not found
        """
        order = await self.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order.status

    async def write_status_and_append_entry(
        self,
        order_id: uuid.UUID,
        expected_version: int,
        new_status: OrderStatus,
        title: Optional[str] = None,
        body: Optional[str] = None,
        changed_at: Optional[datetime] = None,
    ) -> TrackingEntry:
        """
        Set the order status and append its tracking entry atomically.

        The status update only applies if the order still carries
        ``expected_version``; the version is bumped in the same statement.

        Args:
            order_id: Order identifier
            expected_version: Version observed when the transition was decided
            new_status: Status to store
            title: Optional tracking title
            body: Optional tracking body
            changed_at: Value stored in ``updated_at``, defaults to now

        Returns:
            The committed tracking entry

        Raises:
            OrderNotFoundError: If order no longer exists
            WriteConflictError: If another writer changed the order first
            OrderPersistenceError: If either write fails
        """
        try:
            stmt = (
                update(Order)
                .where(Order.id == order_id, Order.version == expected_version)
                .values(
                    status=new_status,
                    version=Order.version + 1,
                    updated_at=changed_at or datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)

            if result.rowcount != 1:
                exists = await self.session.scalar(
                    select(Order.id).where(Order.id == order_id)
                )
                await self.session.rollback()
                if exists is None:
                    raise OrderNotFoundError("Order not found", order_id=str(order_id))
                logger.warning(
                    "Order status write conflict",
                    order_id=str(order_id),
                    expected_version=expected_version,
                )
                raise WriteConflictError(
                    "Order was modified concurrently",
                    order_id=str(order_id),
                    expected_version=expected_version,
                )

            entry = await self.ledger.append(order_id, new_status, title, body)
            await self.session.commit()

        except (OrderNotFoundError, WriteConflictError):
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Failed to update order status",
                order_id=str(order_id),
                new_status=new_status.value,
                error=str(e),
            )
            raise OrderPersistenceError(
                "Failed to update order status",
                order_id=str(order_id),
                error=str(e),
            ) from e

        logger.info(
            "Order status persisted",
            order_id=str(order_id),
            new_status=new_status.value,
            version=expected_version + 1,
            sequence=entry.sequence,
        )
        return entry

    async def list_entries(self, order_id: uuid.UUID) -> Sequence[TrackingEntry]:
        """
        List tracking entries for an order, oldest first.

        Raises:
            OrderPersistenceError: If query fails
        """
        try:
            return await self.ledger.list_entries(order_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Failed to list tracking entries",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderPersistenceError(
                "Failed to list tracking entries",
                order_id=str(order_id),
                error=str(e),
            ) from e
