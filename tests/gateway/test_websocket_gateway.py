"""
Unit tests for the order stream server.

Message handling is exercised with a fake connection; one test runs a
real ``websockets`` server on an ephemeral port.
"""

import asyncio
import json

import pytest
from websockets.asyncio.client import connect

from order_engine.admission.admission_controller import (
    AdmissionConfig,
    AdmissionController,
)
from order_engine.broadcast.connections import ISubscriberConnection
from order_engine.broadcast.status_broadcaster import StatusBroadcaster
from order_engine.gateway.websocket_gateway import OrderStreamServer
from order_engine.models.order import OrderStatus
from order_engine.persistence.order_store import InMemoryOrderStore


class FakeConnection(ISubscriberConnection):
    def __init__(self):
        self.sent = []
        self._closed = asyncio.Event()

    @property
    def is_open(self):
        return not self._closed.is_set()

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        self._closed.set()

    async def wait_closed(self):
        await self._closed.wait()


class IdleExecutor:
    """Executor that never gets called in these tests."""

    async def execute_order(self, order, retry_attempt=0):
        raise AssertionError("controller was not started")


def make_server():
    store = InMemoryOrderStore()
    broadcaster = StatusBroadcaster(close_delay=0.01)
    admission = AdmissionController(
        IdleExecutor(), AdmissionConfig(max_concurrent_orders=1, cleanup_interval=0)
    )
    server = OrderStreamServer(store, broadcaster, admission, host="127.0.0.1", port=0)
    return server, store, broadcaster, admission


VALID_ORDER = json.dumps(
    {"type": "market", "fromToken": "SOL", "toToken": "USDC", "amount": 10}
)


class TestHandleMessage:
    """Ingestion of a single order message."""

    @pytest.mark.asyncio
    async def test_valid_order_is_stored_subscribed_and_admitted(self) -> None:
        server, store, broadcaster, admission = make_server()
        connection = FakeConnection()

        order = await server.handle_message(connection, VALID_ORDER)

        assert order is not None
        assert (await store.get(order.id)).status is OrderStatus.PENDING
        assert broadcaster.get_order_connections(order.id) == 1
        assert admission.get_job_status(order.id)["state"] == "waiting"
        assert connection.sent[0]["status"] == "pending"
        assert connection.sent[0]["message"] == "Order received and queued"
        assert connection.sent[0]["orderId"] == order.id

        await broadcaster.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self) -> None:
        server, _, broadcaster, admission = make_server()
        connection = FakeConnection()

        result = await server.handle_message(connection, "{not json")

        assert result is None
        assert connection.sent[0]["type"] == "error"
        assert "Invalid JSON" in connection.sent[0]["error"]
        assert not connection.is_open
        assert admission.get_queue_stats()["total"] == 0

    @pytest.mark.asyncio
    async def test_invalid_order_rejected(self) -> None:
        server, _, broadcaster, _ = make_server()
        connection = FakeConnection()
        payload = json.dumps(
            {"type": "market", "fromToken": "SOL", "toToken": "USDC", "amount": -1}
        )

        result = await server.handle_message(connection, payload)

        assert result is None
        assert "Amount must be positive" in connection.sent[0]["error"]
        assert broadcaster.get_active_connections() == 0


class TestOrderStreamServer:
    """Real socket round trip."""

    @pytest.mark.asyncio
    async def test_order_over_websocket(self) -> None:
        server, store, broadcaster, _ = make_server()
        await server.start()
        try:
            assert server.is_serving
            async with connect(f"ws://127.0.0.1:{server.port}") as client:
                await client.send(VALID_ORDER)
                frame = json.loads(await asyncio.wait_for(client.recv(), timeout=2))

            assert frame["status"] == "pending"
            assert (await store.get(frame["orderId"])) is not None
        finally:
            await server.stop()
            await broadcaster.shutdown()

        assert not server.is_serving
