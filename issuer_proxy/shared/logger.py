"""Component logging helpers.

Usage:
    from issuer_proxy.shared.logger import log_info, log_error

    log_info("Route registered", component="route_store", hostname=hostname)
    log_error("Save failed", component="route_store", error=e)

Every helper takes an optional ``component`` that selects the logger
``issuer_proxy.<component>``; remaining keyword arguments become structured
fields on the event.
"""

import logging
from typing import Optional

from .log_levels import TRACE
from .logging import get_logger

ROOT_LOGGER = "issuer_proxy"


def _logger(component: Optional[str]):
    return get_logger(f"{ROOT_LOGGER}.{component}" if component else ROOT_LOGGER)


def log_debug(message: str, component: Optional[str] = None, **kwargs):
    """Debug log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _logger(component).debug(message, **kwargs)


def log_info(message: str, component: Optional[str] = None, **kwargs):
    """Info log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _logger(component).info(message, **kwargs)


def log_warning(message: str, component: Optional[str] = None, **kwargs):
    """Warning log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _logger(component).warning(message, **kwargs)


def log_error(message: str, component: Optional[str] = None, error: Optional[Exception] = None, **kwargs):
    """Error log.

    Args:
        message: Log message
        component: Optional component name
        error: Optional exception to log
        **kwargs: Additional structured data
    """
    if error:
        kwargs['error'] = str(error)
        kwargs['error_type'] = type(error).__name__

    _logger(component).error(message, **kwargs)


def log_trace(message: str, component: Optional[str] = None, **kwargs):
    """Trace log (very verbose debugging).

    Emitted at DEBUG with a ``trace`` marker, only when the stdlib logger has
    TRACE enabled.
    """
    name = f"{ROOT_LOGGER}.{component}" if component else ROOT_LOGGER
    if logging.getLogger(name).isEnabledFor(TRACE):
        get_logger(name).debug(message, trace=True, **kwargs)


def log_request(method: str, path: str, client_ip: str, proxy_hostname: str, **kwargs):
    """HTTP request log.

    Args:
        method: HTTP method
        path: Request path
        client_ip: Client IP address
        proxy_hostname: Hostname being accessed
        **kwargs: Additional request data
    """
    _logger("request").info(
        f"REQUEST: {method} {path}",
        request_method=method,
        request_path=path,
        client_ip=client_ip,
        proxy_hostname=proxy_hostname,
        **kwargs
    )


def log_response(status: int, duration_ms: float, **kwargs):
    """HTTP response log.

    Args:
        status: HTTP status code
        duration_ms: Request duration in milliseconds
        **kwargs: Additional response data
    """
    _logger("request").info(
        f"RESPONSE: {status} in {duration_ms:.2f}ms",
        status=status,
        duration_ms=round(duration_ms, 2),
        **kwargs
    )
