"""
Unit tests for the HTTP API.
"""

import asyncio
import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from order_engine.gateway.http_api import create_http_app, create_http_server
from order_engine.models.order import OrderKind, OrderRequest, OrderStatus
from order_engine.persistence.order_store import InMemoryOrderStore


class TestHttpApi(unittest.TestCase):
    """Test cases for the read-only endpoints."""

    def setUp(self):
        """Set up test fixtures."""
        self.store = InMemoryOrderStore()
        self.admission = MagicMock()
        self.admission.get_queue_stats.return_value = {
            "waiting": 1,
            "delayed": 0,
            "active": 2,
            "completed": 3,
            "failed": 0,
            "total": 6,
            "activeConnections": 2,
        }
        self.client = TestClient(create_http_app(self.store, self.admission))

    def _create_order(self, status=None):
        order = asyncio.run(
            self.store.create(OrderRequest(OrderKind.MARKET, "SOL", "USDC", 5.0))
        )
        if status is not None:
            asyncio.run(self.store.update_status(order.id, status))
        return order

    def test_get_order(self):
        """Test order lookup by id."""
        order = self._create_order()

        response = self.client.get(f"/api/orders/{order.id}")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["id"], order.id)
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["fromToken"], "SOL")

    def test_get_unknown_order(self):
        """Test 404 for unknown ids."""
        response = self.client.get("/api/orders/missing")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Order not found"})

    def test_list_by_status(self):
        """Test status filtering."""
        pending = self._create_order()
        self._create_order(OrderStatus.FAILED)

        response = self.client.get("/api/orders/status/pending")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["count"], 1)
        self.assertEqual(body["orders"][0]["id"], pending.id)

    def test_list_by_invalid_status(self):
        """Test 400 for unknown statuses."""
        response = self.client.get("/api/orders/status/settled")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid status"})

    def test_queue_stats(self):
        """Test queue statistics passthrough."""
        response = self.client.get("/api/queue/stats")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["activeConnections"], 2)
        self.assertEqual(response.json()["total"], 6)

    def test_health(self):
        """Test liveness probe."""
        response = self.client.get("/api/health")

        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertIsInstance(body["timestamp"], int)
        self.assertGreaterEqual(body["uptime"], 0)

    def test_create_http_server(self):
        """Test uvicorn server wiring."""
        app = create_http_app(self.store, self.admission)

        server = create_http_server(app, "127.0.0.1", 8123)

        self.assertEqual(server.config.port, 8123)
        self.assertEqual(server.config.host, "127.0.0.1")
        self.assertIsNone(server.config.log_config)


if __name__ == "__main__":
    unittest.main()
