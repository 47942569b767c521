"""Proxy module: request dispatch and forwarding."""

from .app import ProxyApp, create_proxy_app
from .dispatcher import RequestDispatcher, AUTO_DISCOVERED_NAME
from .forwarder import Forwarder

__all__ = [
    'ProxyApp',
    'create_proxy_app',
    'RequestDispatcher',
    'AUTO_DISCOVERED_NAME',
    'Forwarder',
]
