"""Live order status fan-out to subscribed connections."""

from .connections import ISubscriberConnection, WebSocketSubscriberConnection
from .status_broadcaster import BroadcastError, IStatusSink, StatusBroadcaster

__all__ = [
    "BroadcastError",
    "ISubscriberConnection",
    "IStatusSink",
    "StatusBroadcaster",
    "WebSocketSubscriberConnection",
]
