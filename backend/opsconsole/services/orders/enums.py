"""Order status enum and permitted-transition table.

The lifecycle is defined entirely by ``ORDER_STATUS_TRANSITIONS``, an
adjacency mapping from each status to the statuses reachable directly from
it. Enumeration order carries no meaning.
"""

from enum import Enum
from typing import Dict, FrozenSet


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> CONFIRMED, CANCELLED
    - CONFIRMED -> PREPARING, CANCELLED
    - PREPARING -> OUT_FOR_DELIVERY, CANCELLED
    - OUT_FOR_DELIVERY -> DELIVERED, CANCELLED (failed delivery)
    - DELIVERED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Matching is case-insensitive and treats spaces and dashes as
        underscores, so ``"out for delivery"`` parses.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        normalized = value.strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status has no outgoing transitions."""
        return not ORDER_STATUS_TRANSITIONS[self]

    @property
    def display_name(self) -> str:
        """Human-readable display name, e.g. ``Out For Delivery``."""
        return self.value.replace("_", " ").title()


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PREPARING,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PREPARING: frozenset({
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),  # Terminal
    OrderStatus.CANCELLED: frozenset(),  # Terminal
}


def get_allowed_order_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    """Get all statuses reachable directly from ``current``.

    Args:
        current: Current order status

    Returns:
        Set of allowed next statuses
    """
    return ORDER_STATUS_TRANSITIONS.get(current, frozenset())


def validate_order_status_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Check ``current -> new`` against the transition table only."""
    return new in get_allowed_order_transitions(current)
