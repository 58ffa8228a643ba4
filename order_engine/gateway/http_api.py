"""
Read-only HTTP API over orders and queue state.

GET /api/orders/{order_id}        - Order details
GET /api/orders/status/{status}   - Orders in one status, newest first
GET /api/queue/stats              - Admission queue counts
GET /api/health                   - Liveness probe
"""

import time
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from order_engine.admission.admission_controller import AdmissionController
from order_engine.core.logger import get_module_logger
from order_engine.models.order import OrderStatus
from order_engine.persistence.order_store import IOrderStore

logger = get_module_logger("gateway.http")


def create_http_app(
    order_store: IOrderStore, admission: AdmissionController
) -> FastAPI:
    """
    Factory function to build the HTTP API.

    Args:
        order_store: Source of order records
        admission: Source of queue statistics

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title="Order Execution Engine",
        description="Order lookup and queue statistics",
    )
    started_at = time.monotonic()

    @app.get("/api/orders/status/{status}")
    async def get_orders_by_status(status: str) -> Any:
        try:
            parsed = OrderStatus.parse(status)
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid status"})

        orders = await order_store.list_by_status(parsed)
        return {"orders": [order.to_dict() for order in orders], "count": len(orders)}

    @app.get("/api/orders/{order_id}")
    async def get_order(order_id: str) -> Any:
        order = await order_store.get(order_id)
        if order is None:
            return JSONResponse(status_code=404, content={"error": "Order not found"})
        return order.to_dict()

    @app.get("/api/queue/stats")
    async def get_queue_stats() -> Dict[str, int]:
        return admission.get_queue_stats()

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": int(time.time() * 1000),
            "uptime": time.monotonic() - started_at,
        }

    return app


def create_http_server(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """
    Wrap the app in a uvicorn server that runs inside the caller's loop.

    Logging stays with the engine's own handlers.
    """
    config = uvicorn.Config(app, host=host, port=port, log_config=None)
    logger.info(f"HTTP API configured on http://{host}:{port}")
    return uvicorn.Server(config)
