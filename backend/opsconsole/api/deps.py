"""
FastAPI dependencies shared by the API routers.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsconsole.database.connection import get_db
from opsconsole.services.orders.service import OrderService
from opsconsole.services.orders.state_machine import (
    OrderStateMachine,
    get_order_state_machine,
)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_state_machine() -> OrderStateMachine:
    """Provide the configured order state machine."""
    return get_order_state_machine()


async def get_order_service(
    db: DatabaseSession,
    state_machine: Annotated[OrderStateMachine, Depends(get_state_machine)],
) -> OrderService:
    """Provide an order service bound to the request's session."""
    return OrderService(db, state_machine=state_machine)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
