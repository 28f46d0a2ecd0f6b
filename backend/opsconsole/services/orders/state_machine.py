"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class, which decides whether an
order may move from its current status to a requested one. It is pure: it
never reads the clock or touches persistence, so the whole lifecycle can be
exercised without a database.
"""

from typing import Any, FrozenSet, Optional

from opsconsole.core.config import get_settings
from opsconsole.core.logging import get_logger
from opsconsole.services.orders.enums import (
    ORDER_STATUS_TRANSITIONS,
    OrderStatus,
    get_allowed_order_transitions,
)

logger = get_logger(__name__)


class InvalidTransitionError(Exception):
    """Raised when the requested status is not reachable from the current one."""

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: OrderStatus,
        **context: Any
    ):
        super().__init__(message)
        self.current_state = current_state
        self.target_state = target_state
        self.context = context


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    Transitions are looked up in ``ORDER_STATUS_TRANSITIONS``. Requesting the
    current status again is governed by ``allow_reapply``: when enabled the
    request is accepted (and the caller records it in the ledger again),
    otherwise it is rejected like any pair missing from the table.
    """

    def __init__(self, allow_reapply: Optional[bool] = None):
        """Initialize state machine.

        Args:
            allow_reapply: Accept re-submission of the current status;
                defaults to ``Settings.order_allow_status_reapply``
        """
        if allow_reapply is None:
            allow_reapply = get_settings().order_allow_status_reapply
        self.allow_reapply = allow_reapply

    def allowed_transitions(self, current: OrderStatus) -> FrozenSet[OrderStatus]:
        """Get statuses that may be requested from ``current``.

        Args:
            current: Current order status

        Returns:
            Set of accepted target statuses, including ``current`` itself
            when re-application is enabled
        """
        allowed = get_allowed_order_transitions(current)
        if self.allow_reapply:
            return allowed | {current}
        return allowed

    def is_allowed(self, current: OrderStatus, requested: OrderStatus) -> bool:
        """Check whether ``current -> requested`` would be accepted."""
        return requested in self.allowed_transitions(current)

    def transition(self, current: OrderStatus, requested: OrderStatus) -> OrderStatus:
        """Validate a requested status change.

        Args:
            current: Status read from the order
            requested: Status asked for by the caller

        Returns:
            The new status (``requested``)

        Raises:
            InvalidTransitionError: If the pair is not permitted
        """
        if not self.is_allowed(current, requested):
            allowed = sorted(s.value for s in self.allowed_transitions(current))
            logger.debug(
                "State transition rejected",
                current_status=current.value,
                target_status=requested.value,
                allowed_transitions=allowed,
            )
            raise InvalidTransitionError(
                f"Invalid transition from {current.value} to {requested.value}",
                current_state=current,
                target_state=requested,
                allowed_transitions=allowed,
            )

        return requested

    @staticmethod
    def statuses() -> FrozenSet[OrderStatus]:
        """All statuses known to the transition table."""
        return frozenset(ORDER_STATUS_TRANSITIONS)


def get_order_state_machine(allow_reapply: Optional[bool] = None) -> OrderStateMachine:
    """Factory function to create an OrderStateMachine instance."""
    return OrderStateMachine(allow_reapply=allow_reapply)
