"""Admin API for inspecting and extending the routing table."""

from .admin import create_admin_app, create_admin_router

__all__ = ['create_admin_app', 'create_admin_router']
