"""
Subscriber connection abstraction for status streaming.

The broadcaster only needs to send text, close, and learn when a client
went away; ``WebSocketSubscriberConnection`` provides that on top of a
``websockets`` server connection.
"""

from abc import ABC, abstractmethod
from typing import Any

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State


class ISubscriberConnection(ABC):
    """Transport handle for one client watching an order."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while messages can still be delivered."""

    @abstractmethod
    async def send(self, message: str) -> None:
        """
        Deliver one text frame.

        Raises:
            Exception: Any transport failure
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection; safe to call more than once."""

    @abstractmethod
    async def wait_closed(self) -> None:
        """Return once the connection is closed, raising on transport error."""


class WebSocketSubscriberConnection(ISubscriberConnection):
    """Adapts a ``websockets`` server connection."""

    def __init__(self, websocket: Any) -> None:
        """
        Args:
            websocket: Connection object handed to a ``websockets.serve`` handler
        """
        self._websocket = websocket

    @property
    def websocket(self) -> Any:
        return self._websocket

    @property
    def is_open(self) -> bool:
        return self._websocket.state is State.OPEN

    async def send(self, message: str) -> None:
        await self._websocket.send(message)

    async def close(self) -> None:
        try:
            await self._websocket.close()
        except ConnectionClosed:
            pass

    async def wait_closed(self) -> None:
        await self._websocket.wait_closed()

    def __repr__(self) -> str:
        remote = getattr(self._websocket, "remote_address", None)
        return f"WebSocketSubscriberConnection(remote={remote})"
