"""Error types raised across the proxy.

Each error carries a machine-readable ``code`` and a human-readable
``message``. Subsystems convert them into responses or typed outcomes at
their own boundary.
"""

from typing import Any, Dict, Optional


class IssuerProxyError(Exception):
    """Base class for all proxy errors."""

    code = "proxy_error"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ConfigError(IssuerProxyError):
    """Routing table storage is unreadable or corrupt."""

    code = "config_error"


class ValidationError(IssuerProxyError):
    """Admin API input was rejected."""

    code = "validation_error"
    status_code = 400


class RouteNotFoundError(IssuerProxyError):
    """No known or discoverable route exists for a hostname."""

    code = "issuer_not_configured"
    status_code = 404

    def __init__(self, hostname: str, message: str, admin_url: str, code: Optional[str] = None):
        super().__init__(message, code)
        self.hostname = hostname
        self.admin_url = admin_url

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "admin_url": self.admin_url}


class DiscoveryTimeoutError(IssuerProxyError):
    """A single discovery probe did not answer in time."""

    code = "discovery_timeout"
    status_code = 504

    def __init__(self, port: int, timeout: float):
        super().__init__(f"Probe on port {port} timed out after {timeout:.3f}s")
        self.port = port
        self.timeout = timeout


class BackendUnavailableError(IssuerProxyError):
    """Forwarding to a resolved backend failed."""

    code = "backend_unavailable"
    status_code = 500

    def __init__(self, target: str, message: str):
        super().__init__(message)
        self.target = target


class PersistenceError(IssuerProxyError):
    """Writing the routing table to durable storage failed."""

    code = "persistence_failed"
    status_code = 500


class StartupError(IssuerProxyError):
    """The process cannot start, e.g. TLS material is missing."""

    code = "startup_error"
