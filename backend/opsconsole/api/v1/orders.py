"""
Order status API endpoints.

This module implements the FastAPI router for the admin order status
workflow: changing an order's status and reading its tracking history.
Domain errors are mapped to HTTP status codes here; the response envelope
for failures is rendered by the application's HTTPException handler.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from opsconsole.api.deps import OrderServiceDep
from opsconsole.core.logging import get_logger
from opsconsole.schemas.orders import (
    OrderStatusUpdateEnvelope,
    OrderStatusUpdateRequest,
    TrackingHistoryEnvelope,
)
from opsconsole.services.orders.repository import (
    OrderNotFoundError,
    OrderPersistenceError,
    WriteConflictError,
)
from opsconsole.services.orders.state_machine import InvalidTransitionError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.patch(
    "/{order_id}/status",
    response_model=OrderStatusUpdateEnvelope,
    summary="Update order status",
    description="Move an order to a new status and append a tracking entry",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdateRequest,
    order_service: OrderServiceDep,
) -> OrderStatusUpdateEnvelope:
    """
    Update order status with state machine validation.

    Args:
        order_id: Order identifier
        request: Requested status and optional tracking text
        order_service: Order service bound to the request session

    Returns:
        OrderStatusUpdateEnvelope: Updated order with its new tracking entry

    Raises:
        HTTPException: 400 invalid transition, 404 order not found,
            409 concurrent modification, 500 persistence failure
    """
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        requested_status=request.status.value,
    )

    try:
        result = await order_service.update_status(
            order_id=order_id,
            requested_status=request.status,
            title=request.title,
            body=request.body,
        )
    except InvalidTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e
    except WriteConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Order was modified concurrently, reload and retry",
        ) from e
    except OrderPersistenceError as e:
        logger.error(
            "Failed to update order status",
            order_id=str(order_id),
            error=str(e),
            context=e.context,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order status",
        ) from e

    return OrderStatusUpdateEnvelope(data=result)


@router.get(
    "/{order_id}/tracking",
    response_model=TrackingHistoryEnvelope,
    summary="Get order tracking history",
)
async def get_order_tracking(
    order_id: UUID,
    order_service: OrderServiceDep,
) -> TrackingHistoryEnvelope:
    """Return an order's tracking entries, oldest first."""
    try:
        entries = await order_service.get_tracking_history(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e
    except OrderPersistenceError as e:
        logger.error(
            "Failed to load tracking history",
            order_id=str(order_id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load tracking history",
        ) from e

    return TrackingHistoryEnvelope(
        data={"order_id": str(order_id), "entries": entries, "total": len(entries)}
    )
