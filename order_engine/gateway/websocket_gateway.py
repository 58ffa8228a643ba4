"""
WebSocket ingestion for order execution.

Clients connect, send an order as JSON, and receive that order's status
events on the same connection until it is closed after the terminal
status.
"""

import json
import time
from typing import Any, Optional, Union

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from order_engine.admission.admission_controller import AdmissionController
from order_engine.broadcast.connections import (
    ISubscriberConnection,
    WebSocketSubscriberConnection,
)
from order_engine.broadcast.status_broadcaster import StatusBroadcaster
from order_engine.core.logger import get_module_logger
from order_engine.models.order import (
    Order,
    OrderRequest,
    OrderStatus,
    OrderValidationError,
    StatusEvent,
)
from order_engine.persistence.order_store import IOrderStore, OrderStoreError


class OrderStreamServer:
    """
    Accepts orders over WebSocket and streams their status back.

    Attributes:
        _store: Store new orders are created in
        _broadcaster: Registry the client connection is subscribed to
        _admission: Controller the created order is submitted to
    """

    def __init__(
        self,
        order_store: IOrderStore,
        broadcaster: StatusBroadcaster,
        admission: AdmissionController,
        host: str = "0.0.0.0",
        port: int = 3001,
    ) -> None:
        self._store = order_store
        self._broadcaster = broadcaster
        self._admission = admission
        self._host = host
        self._port = port
        self._server: Optional[Server] = None
        self._logger = get_module_logger("gateway.websocket")

    @property
    def is_serving(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self._server is None:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Start listening for order connections."""
        if self._server is not None:
            self._logger.warning("Order stream server already running")
            return
        self._server = await serve(self.handle_connection, self._host, self._port)
        self._logger.info(f"Order stream listening on ws://{self._host}:{self.port}")

    async def stop(self) -> None:
        """Close the listener and every open client connection."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._logger.info("Order stream server stopped")

    async def handle_connection(self, websocket: ServerConnection) -> None:
        """Per-connection loop; each text message is one order."""
        connection = WebSocketSubscriberConnection(websocket)
        self._logger.debug(f"Client connected: {connection}")
        try:
            async for message in websocket:
                await self.handle_message(connection, message)
        except ConnectionClosed as e:
            self._logger.debug(f"Client connection closed: {e}")

    async def handle_message(
        self, connection: ISubscriberConnection, message: Union[str, bytes]
    ) -> Optional[Order]:
        """
        Create, subscribe and admit one order.

        Args:
            connection: Connection the order arrived on
            message: Raw JSON order payload

        Returns:
            Optional[Order]: Created order, or None if it was rejected
        """
        try:
            payload = self._decode(message)
            request = OrderRequest.from_dict(payload)
            order = await self._store.create(request)
        except (OrderValidationError, OrderStoreError) as e:
            self._logger.error(f"Failed to process order: {e}")
            await self._reject(connection, str(e))
            return None

        self._logger.info(
            f"Order {order.id}: received {order.kind.value} "
            f"{order.quantity} {order.source_asset}->{order.destination_asset}"
        )

        self._broadcaster.subscribe(order.id, connection)
        await self._broadcaster.publish(
            StatusEvent(order.id, OrderStatus.PENDING, "Order received and queued")
        )
        await self._admission.submit(order)
        return order

    @staticmethod
    def _decode(message: Union[str, bytes]) -> Any:
        try:
            return json.loads(message)
        except (TypeError, ValueError) as e:
            raise OrderValidationError(f"Invalid JSON payload: {e}") from e

    async def _reject(self, connection: ISubscriberConnection, error: str) -> None:
        frame = json.dumps(
            {"type": "error", "error": error, "timestamp": int(time.time() * 1000)}
        )
        try:
            if connection.is_open:
                await connection.send(frame)
        except Exception as e:
            self._logger.warning(f"Could not deliver error frame: {e}")
        await connection.close()
