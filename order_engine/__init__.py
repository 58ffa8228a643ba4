"""
Order Engine Package

Asynchronous order execution engine that routes swaps across competing
liquidity venues, runs each order through a retrying state machine, and
streams live status updates to subscribed clients.
"""

__version__ = "1.0.0"
__author__ = "Order Engine Team"
