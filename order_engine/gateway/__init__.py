"""Client-facing surfaces: WebSocket order stream and HTTP API."""

from .http_api import create_http_app, create_http_server
from .websocket_gateway import OrderStreamServer

__all__ = ["OrderStreamServer", "create_http_app", "create_http_server"]
