"""Hostname-routed HTTPS reverse proxy for local credential issuers."""

__version__ = "0.1.0"
