"""
Order and order tracking models.

``Order`` holds the current lifecycle status of a customer order together
with an optimistic-concurrency version. ``TrackingEntry`` rows form the
append-only ledger of status changes shown to the customer; they reference
their order by ``order_id`` and are never updated or deleted.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from opsconsole.database.base import Base, BaseModel, UUIDMixin
from opsconsole.services.orders.enums import OrderStatus


class Order(BaseModel):
    """
    Customer order lifecycle record.

    Attributes:
        id: Unique order identifier (UUID)
        status: Current order status
        version: Optimistic-concurrency token, bumped on every accepted transition
        created_at: Record creation timestamp
        updated_at: Timestamp of the last accepted transition
    """

    __tablename__ = "orders"

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", native_enum=False, length=32),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic concurrency token",
    )

    __table_args__ = (
        {"comment": "Customer orders"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status={self.status.value if self.status else None}, "
            f"version={self.version})>"
        )


class TrackingEntry(Base, UUIDMixin):
    """
    Append-only order tracking ledger entry.

    Attributes:
        id: Unique entry identifier (UUID)
        order_id: Owning order
        status: Status the order moved to
        title: Customer-facing headline
        body: Customer-facing description
        sequence: Position in the order's ledger, starting at 1
        created_at: Time the entry was written
    """

    __tablename__ = "order_tracking"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Owning order identifier",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", native_enum=False, length=32),
        nullable=False,
        comment="Status recorded by this entry",
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Customer-facing title",
    )

    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Customer-facing body",
    )

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-order ledger position",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Timestamp when entry was written",
    )

    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_order_tracking_order_sequence"),
        Index("ix_order_tracking_order_created", "order_id", "created_at"),
        {"comment": "Append-only order status ledger"},
    )

    def __repr__(self) -> str:
        return (
            f"<TrackingEntry(order_id={self.order_id}, sequence={self.sequence}, "
            f"status={self.status.value if self.status else None})>"
        )


class TrackingEntryImmutableError(Exception):
    """Raised when code tries to modify or remove a tracking entry."""


@event.listens_for(TrackingEntry, "before_update")
def _reject_tracking_update(mapper, connection, target: TrackingEntry) -> None:
    raise TrackingEntryImmutableError(
        f"Tracking entries are append-only (order_id={target.order_id}, "
        f"sequence={target.sequence})"
    )


@event.listens_for(TrackingEntry, "before_delete")
def _reject_tracking_delete(mapper, connection, target: TrackingEntry) -> None:
    raise TrackingEntryImmutableError(
        f"Tracking entries cannot be deleted (order_id={target.order_id}, "
        f"sequence={target.sequence})"
    )
