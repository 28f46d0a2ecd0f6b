"""
Test suite for OrderService status updates.

Tests cover the accepted path, rejections that must leave no trace,
all-or-nothing persistence, and concurrent updates of one order.
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from opsconsole.services.orders.enums import OrderStatus
from opsconsole.services.orders.ledger import TrackingLedger
from opsconsole.services.orders.repository import (
    OrderNotFoundError,
    OrderPersistenceError,
    OrderRepository,
    WriteConflictError,
)
from opsconsole.services.orders.service import OrderService
from opsconsole.services.orders.state_machine import (
    InvalidTransitionError,
    OrderStateMachine,
)


async def _snapshot(session_factory, order_id):
    async with session_factory() as session:
        repository = OrderRepository(session)
        order = await repository.get_order_by_id(order_id)
        entries = await repository.list_entries(order_id)
        return order, list(entries)


# ============================================================================
# Accepted Transitions
# ============================================================================


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_create_order_summary(self, db_session):
        summary = await OrderService(db_session).create_order()

        assert summary["status"] == "PENDING"
        assert summary["version"] == 1
        assert "id" not in summary
        assert await OrderService(db_session).get_tracking_history(
            UUID(summary["order_id"])
        ) == []

    @pytest.mark.asyncio
    async def test_pending_to_confirmed_with_defaults(self, session_factory, make_order):
        order_id = await make_order()

        async with session_factory() as session:
            result = await OrderService(session).update_status(
                order_id, OrderStatus.CONFIRMED
            )

        assert result["status"] == "CONFIRMED"
        assert result["version"] == 2
        assert result["tracking_entry"]["title"] == "Order CONFIRMED"
        assert result["tracking_entry"]["body"] == "Your order has been confirmed"
        assert result["tracking_entry"]["sequence"] == 1

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.CONFIRMED
        assert len(entries) == 1
        assert entries[0].status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_custom_title_and_body_are_recorded(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.PREPARING)

        async with session_factory() as session:
            await OrderService(session).update_status(
                order_id,
                OrderStatus.OUT_FOR_DELIVERY,
                title="On the way",
                body="Rider picked up",
            )

        _, entries = await _snapshot(session_factory, order_id)
        assert (entries[0].title, entries[0].body) == ("On the way", "Rider picked up")

    @pytest.mark.asyncio
    async def test_full_lifecycle_builds_ordered_history(self, session_factory, make_order):
        order_id = await make_order()
        path = [
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        ]

        for status in path:
            async with session_factory() as session:
                await OrderService(session).update_status(order_id, status)

        async with session_factory() as session:
            history = await OrderService(session).get_tracking_history(order_id)

        assert [h["status"] for h in history] == [s.value for s in path]
        assert [h["sequence"] for h in history] == [1, 2, 3, 4]
        created = [h["created_at"] for h in history]
        assert created == sorted(created)

    @pytest.mark.asyncio
    async def test_reapply_appends_second_entry(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.CONFIRMED)
        machine = OrderStateMachine(allow_reapply=True)

        for _ in range(2):
            async with session_factory() as session:
                await OrderService(session, state_machine=machine).update_status(
                    order_id, OrderStatus.CONFIRMED
                )

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.CONFIRMED
        assert order.version == 3
        assert [e.sequence for e in entries] == [1, 2]


# ============================================================================
# Rejections
# ============================================================================


class TestRejections:
    @pytest.mark.asyncio
    async def test_delivered_to_cancelled_is_rejected(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.DELIVERED)

        async with session_factory() as session:
            with pytest.raises(InvalidTransitionError):
                await OrderService(session).update_status(
                    order_id, OrderStatus.CANCELLED
                )

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.DELIVERED
        assert order.version == 1
        assert entries == []

    @pytest.mark.asyncio
    async def test_confirmed_cannot_jump_to_delivered(self, session_factory, make_order):
        order_id = await make_order()

        async with session_factory() as session:
            await OrderService(session).update_status(order_id, OrderStatus.CONFIRMED)

        async with session_factory() as session:
            with pytest.raises(InvalidTransitionError):
                await OrderService(session).update_status(
                    order_id, OrderStatus.DELIVERED
                )

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.CONFIRMED
        assert [e.status for e in entries] == [OrderStatus.CONFIRMED]

    @pytest.mark.asyncio
    async def test_strict_policy_rejects_repeat(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.CONFIRMED)
        machine = OrderStateMachine(allow_reapply=False)

        async with session_factory() as session:
            with pytest.raises(InvalidTransitionError):
                await OrderService(session, state_machine=machine).update_status(
                    order_id, OrderStatus.CONFIRMED
                )

        _, entries = await _snapshot(session_factory, order_id)
        assert entries == []

    @pytest.mark.asyncio
    async def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            await OrderService(db_session).update_status(uuid4(), OrderStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_tracking_history_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            await OrderService(db_session).get_tracking_history(uuid4())


# ============================================================================
# Persistence Failures
# ============================================================================


class TestPersistenceFailures:
    @pytest.mark.asyncio
    async def test_ledger_failure_leaves_order_untouched(self, session_factory, make_order):
        order_id = await make_order()

        with patch.object(
            TrackingLedger,
            "append",
            AsyncMock(side_effect=SQLAlchemyError("connection reset")),
        ):
            async with session_factory() as session:
                with pytest.raises(OrderPersistenceError):
                    await OrderService(session).update_status(
                        order_id, OrderStatus.CONFIRMED
                    )

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.PENDING
        assert order.version == 1
        assert entries == []

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self, session_factory, make_order):
        order_id = await make_order()

        with patch.object(
            TrackingLedger,
            "append",
            AsyncMock(side_effect=SQLAlchemyError("connection reset")),
        ):
            async with session_factory() as session:
                with pytest.raises(OrderPersistenceError):
                    await OrderService(session).update_status(
                        order_id, OrderStatus.CONFIRMED
                    )

        async with session_factory() as session:
            await OrderService(session).update_status(order_id, OrderStatus.CONFIRMED)

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.CONFIRMED
        assert len(entries) == 1

    @pytest.mark.asyncio
    async def test_result_needs_no_read_after_commit(self, session_factory, make_order):
        order_id = await make_order()
        locked_read = OrderRepository.get_order_by_id

        async def only_locked_reads(self, order_id, for_update=False):
            if not for_update:
                raise OrderPersistenceError("read failed", order_id=str(order_id))
            return await locked_read(self, order_id, for_update=True)

        with patch.object(OrderRepository, "get_order_by_id", only_locked_reads):
            async with session_factory() as session:
                result = await OrderService(session).update_status(
                    order_id, OrderStatus.CONFIRMED
                )

        assert result["order_id"] == str(order_id)
        assert result["status"] == "CONFIRMED"
        assert result["version"] == 2
        assert result["updated_at"]
        assert result["tracking_entry"]["sequence"] == 1

        order, entries = await _snapshot(session_factory, order_id)
        assert order.version == 2
        assert [(e.sequence, e.status) for e in entries] == [
            (1, OrderStatus.CONFIRMED)
        ]


# ============================================================================
# Concurrency
# ============================================================================


class TestConcurrentUpdates:
    @pytest.mark.asyncio
    async def test_competing_terminal_updates_apply_once(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.OUT_FOR_DELIVERY)

        async def attempt(status: OrderStatus):
            async with session_factory() as session:
                return await OrderService(session).update_status(order_id, status)

        results = await asyncio.gather(
            attempt(OrderStatus.DELIVERED),
            attempt(OrderStatus.CANCELLED),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, dict)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (WriteConflictError, InvalidTransitionError))

        order, entries = await _snapshot(session_factory, order_id)
        assert len(entries) == 1
        assert order.status.value == successes[0]["status"]
        assert entries[0].status == order.status
        assert order.version == 2

    @pytest.mark.asyncio
    async def test_stale_read_is_detected(self, session_factory, make_order):
        order_id = await make_order(OrderStatus.OUT_FOR_DELIVERY)

        async with session_factory() as slow_session:
            slow_repository = OrderRepository(slow_session)
            stale = await slow_repository.get_order_for_update(order_id)
            stale_version = stale.version
            await slow_session.rollback()

            async with session_factory() as fast_session:
                await OrderService(fast_session).update_status(
                    order_id, OrderStatus.DELIVERED
                )

            with pytest.raises(WriteConflictError):
                await slow_repository.write_status_and_append_entry(
                    order_id, stale_version, OrderStatus.CANCELLED
                )

        order, entries = await _snapshot(session_factory, order_id)
        assert order.status == OrderStatus.DELIVERED
        assert [e.status for e in entries] == [OrderStatus.DELIVERED]
