"""
Order status Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from opsconsole.services.orders.enums import OrderStatus


class OrderStatusUpdateRequest(BaseModel):
    """Request body for an order status change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus = Field(..., description="Requested order status")
    title: Optional[str] = Field(
        None,
        max_length=255,
        description="Tracking entry title, defaults to 'Order {STATUS}'",
    )
    body: Optional[str] = Field(
        None,
        max_length=2000,
        description="Tracking entry body, defaults to 'Your order has been {status}'",
    )

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: object) -> OrderStatus:
        """Accept status names case-insensitively."""
        if isinstance(v, OrderStatus):
            return v
        if not isinstance(v, str):
            raise ValueError("Status must be a string")
        return OrderStatus.from_string(v)

    @field_validator("title", "body")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as not provided."""
        return v or None


class TrackingEntryResponse(BaseModel):
    """A single tracking ledger entry."""

    id: str
    order_id: str
    status: OrderStatus
    title: str
    body: str
    sequence: int = Field(..., ge=1)
    created_at: datetime


class OrderStatusResponse(BaseModel):
    """Order status summary."""

    order_id: str
    status: OrderStatus
    version: int = Field(..., ge=1)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    tracking_entry: Optional[TrackingEntryResponse] = None


class OrderStatusUpdateEnvelope(BaseModel):
    """Response envelope for a status change."""

    success: bool = True
    data: OrderStatusResponse


class TrackingHistoryResponse(BaseModel):
    """Tracking history for an order."""

    order_id: str
    entries: list[TrackingEntryResponse]
    total: int


class TrackingHistoryEnvelope(BaseModel):
    """Response envelope for tracking history."""

    success: bool = True
    data: TrackingHistoryResponse
