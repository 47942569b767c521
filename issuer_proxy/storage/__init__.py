"""Routing table storage."""

from .models import Route, DEFAULT_ROUTES, default_table, normalize_hostname
from .route_store import RouteStore

__all__ = ['Route', 'DEFAULT_ROUTES', 'default_table', 'normalize_hostname', 'RouteStore']
