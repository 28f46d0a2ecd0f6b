"""
Tests for the order status API endpoints.

Covers the success envelope, HTTP mapping of domain errors and request
validation for the admin status workflow.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from opsconsole.services.orders.enums import OrderStatus
from opsconsole.services.orders.ledger import TrackingLedger
from opsconsole.services.orders.repository import WriteConflictError
from opsconsole.services.orders.service import OrderService

API = "/api/v1/orders"


class TestUpdateOrderStatusEndpoint:
    @pytest.mark.asyncio
    async def test_successful_update(self, async_client, make_order):
        order_id = await make_order()

        response = await async_client.patch(
            f"{API}/{order_id}/status",
            json={"status": "CONFIRMED"},
        )

        assert response.status_code == status.HTTP_200_OK
        payload = response.json()
        assert payload["success"] is True
        assert payload["data"]["order_id"] == str(order_id)
        assert payload["data"]["status"] == "CONFIRMED"
        assert payload["data"]["version"] == 2
        entry = payload["data"]["tracking_entry"]
        assert entry["title"] == "Order CONFIRMED"
        assert entry["body"] == "Your order has been confirmed"
        assert entry["sequence"] == 1

    @pytest.mark.asyncio
    async def test_status_is_case_insensitive(self, async_client, make_order):
        order_id = await make_order(OrderStatus.PREPARING)

        response = await async_client.patch(
            f"{API}/{order_id}/status",
            json={"status": "out_for_delivery", "title": "Rider assigned"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["status"] == "OUT_FOR_DELIVERY"
        assert response.json()["data"]["tracking_entry"]["title"] == "Rider assigned"

    @pytest.mark.asyncio
    async def test_invalid_transition_returns_400(self, async_client, make_order):
        order_id = await make_order(OrderStatus.DELIVERED)

        response = await async_client.patch(
            f"{API}/{order_id}/status",
            json={"status": "CANCELLED"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        payload = response.json()
        assert payload["success"] is False
        assert "DELIVERED" in payload["error"]
        assert "request_id" in payload

        tracking = await async_client.get(f"{API}/{order_id}/tracking")
        assert tracking.json()["data"]["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_order_returns_404(self, async_client):
        response = await async_client.patch(
            f"{API}/{uuid4()}/status",
            json={"status": "CONFIRMED"},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {
            "success": False,
            "error": "Order not found",
            "request_id": response.headers["X-Request-ID"],
        }

    @pytest.mark.asyncio
    async def test_unknown_status_returns_422(self, async_client, make_order):
        order_id = await make_order()

        response = await async_client.patch(
            f"{API}/{order_id}/status",
            json={"status": "SHIPPED"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_missing_status_returns_422(self, async_client, make_order):
        order_id = await make_order()

        response = await async_client.patch(f"{API}/{order_id}/status", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.asyncio
    async def test_write_conflict_returns_409(self, async_client, make_order):
        order_id = await make_order()

        with patch.object(
            OrderService,
            "update_status",
            AsyncMock(side_effect=WriteConflictError("Order was modified concurrently")),
        ):
            response = await async_client.patch(
                f"{API}/{order_id}/status",
                json={"status": "CONFIRMED"},
            )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_persistence_failure_returns_500(self, async_client, make_order):
        order_id = await make_order()

        with patch.object(
            TrackingLedger,
            "append",
            AsyncMock(side_effect=SQLAlchemyError("database is locked")),
        ):
            response = await async_client.patch(
                f"{API}/{order_id}/status",
                json={"status": "CONFIRMED"},
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "Failed to update order status"

        tracking = await async_client.get(f"{API}/{order_id}/tracking")
        assert tracking.json()["data"]["total"] == 0

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, async_client, make_order):
        order_id = await make_order()

        response = await async_client.patch(
            f"{API}/{order_id}/status",
            json={"status": "CANCELLED"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"


class TestTrackingEndpoint:
    @pytest.mark.asyncio
    async def test_history_is_ordered(self, async_client, make_order):
        order_id = await make_order()
        for new_status in ("CONFIRMED", "PREPARING", "CANCELLED"):
            response = await async_client.patch(
                f"{API}/{order_id}/status",
                json={"status": new_status},
            )
            assert response.status_code == status.HTTP_200_OK

        response = await async_client.get(f"{API}/{order_id}/tracking")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["total"] == 3
        assert [e["status"] for e in data["entries"]] == [
            "CONFIRMED",
            "PREPARING",
            "CANCELLED",
        ]
        assert [e["sequence"] for e in data["entries"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_unknown_order_returns_404(self, async_client):
        response = await async_client.get(f"{API}/{uuid4()}/tracking")

        assert response.status_code == status.HTTP_404_NOT_FOUND
