"""Order tracking ledger.

Every accepted status change appends one ``TrackingEntry`` carrying a
customer-facing title and body. Entries are numbered per order and their
``created_at`` never goes backwards within an order, so sorting by either
``sequence`` or ``created_at`` reconstructs the status history.

The ledger writes inside the caller's transaction. It flushes so that
constraint violations surface immediately, but it never commits.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.core.logging import get_logger
from opsconsole.database.models.order import TrackingEntry
from opsconsole.services.orders.enums import OrderStatus

logger = get_logger(__name__)


def default_title(status: OrderStatus) -> str:
    """Title used when the caller does not supply one."""
    return f"Order {status.value}"


def default_body(status: OrderStatus) -> str:
    """Body used when the caller does not supply one."""
    return f"Your order has been {status.value.lower()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TrackingLedger:
    """Append-only status history for orders."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize tracking ledger.

        Args:
            session: Async database session owning the transaction
            clock: Source of wall-clock time for new entries
        """
        self.session = session
        self.clock = clock

    async def _last_entry(self, order_id: uuid.UUID) -> Optional[TrackingEntry]:
        stmt = (
            select(TrackingEntry)
            .where(TrackingEntry.order_id == order_id)
            .order_by(TrackingEntry.sequence.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def append(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> TrackingEntry:
        """
        Append a tracking entry for an order.

        Args:
            order_id: Owning order
            status: Status being recorded
            title: Optional title, defaults to ``Order {STATUS}``
            body: Optional body, defaults to ``Your order has been {status}``

        Returns:
            The flushed tracking entry
        """
        last = await self._last_entry(order_id)

        created_at = self.clock()
        sequence = 1
        if last is not None:
            sequence = last.sequence + 1
            created_at = max(_as_utc(created_at), _as_utc(last.created_at))

        entry = TrackingEntry(
            order_id=order_id,
            status=status,
            title=title if title and title.strip() else default_title(status),
            body=body if body and body.strip() else default_body(status),
            sequence=sequence,
            created_at=created_at,
        )
        self.session.add(entry)
        await self.session.flush()

        logger.debug(
            "Tracking entry appended",
            order_id=str(order_id),
            status=status.value,
            sequence=sequence,
        )

        return entry

    async def list_entries(self, order_id: uuid.UUID) -> Sequence[TrackingEntry]:
        """
        List an order's tracking entries, oldest first.

        Args:
            order_id: Order identifier

        Returns:
            Entries ordered by sequence
        """
        stmt = (
            select(TrackingEntry)
            .where(TrackingEntry.order_id == order_id)
            .order_by(TrackingEntry.sequence.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
