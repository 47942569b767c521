"""Per-request routing decisions.

Looks up the request's hostname in the routing table and forwards on a hit.
A miss on the well-known issuer metadata path triggers discovery, which
registers the found backend before the request is forwarded to it.
"""

import asyncio
import ipaddress
import secrets
import time
from typing import Dict, Optional

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from ..discovery import DiscoveryEngine, DiscoveryOutcome
from ..shared.config import Config
from ..shared.errors import BackendUnavailableError, PersistenceError, RouteNotFoundError, ValidationError
from ..shared.logger import log_info, log_warning, log_error, log_request, log_response
from ..storage import RouteStore, normalize_hostname
from .forwarder import Forwarder

AUTO_DISCOVERED_NAME = "Auto-discovered issuer ({hostname})"


def is_loopback(host: Optional[str]) -> bool:
    """True when a client address is a loopback IP."""
    if not host:
        return False
    try:
        return ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        return False


class RequestDispatcher:
    """Routes each request to a known, discovered or missing issuer."""

    def __init__(self, config: Config, store: RouteStore, engine: DiscoveryEngine, forwarder: Forwarder):
        self.config = config
        self.store = store
        self.engine = engine
        self.forwarder = forwarder
        # Concurrent discoveries for one hostname share a single attempt
        self._inflight: Dict[str, asyncio.Task] = {}

    def is_admin_request(self, hostname: str, path: str, client_host: Optional[str]) -> bool:
        """Decide whether a request belongs to the Admin API.

        Requires the admin hostname and a path under the admin prefix. With
        ADMIN_LOOPBACK_ONLY the client must also connect from loopback, so a
        forged Host header from the network is not enough.
        """
        if hostname != self.config.ADMIN_HOSTNAME:
            return False

        prefix = self.config.ADMIN_PREFIX.rstrip("/")
        if path != prefix and not path.startswith(prefix + "/"):
            return False

        if self.config.ADMIN_LOOPBACK_ONLY and not is_loopback(client_host):
            log_warning("Rejected admin request from non-loopback client", component="dispatcher",
                        client_ip=client_host, path=path)
            return False

        return True

    async def handle_request(self, request: Request) -> Response:
        """Handle one proxied request end to end."""
        start_time = time.time()
        header = self.config.LOG_CORRELATION_ID_HEADER
        correlation_id = request.headers.get(header) or secrets.token_hex(8)
        hostname = normalize_hostname(request.headers.get("host"))
        client_ip = request.client.host if request.client else "unknown"

        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
            log_request(request.method, request.url.path, client_ip, hostname)

            response = await self._dispatch(request, hostname, correlation_id)
            response.headers[header] = correlation_id

            log_response(response.status_code, (time.time() - start_time) * 1000,
                         proxy_hostname=hostname)
        return response

    async def _dispatch(self, request: Request, hostname: str, correlation_id: str) -> Response:
        if not hostname:
            log_warning("No host header in request", component="dispatcher")
            return JSONResponse(
                {"error": "missing_host", "message": "The request has no Host header."},
                status_code=400,
            )

        route = self.store.get(hostname)
        if route:
            log_info(f"Proxying request to {route.target}", component="dispatcher",
                     hostname=hostname, target=route.target)
            return await self._forward(request, route.target, correlation_id)

        if request.url.path == self.config.DISCOVERY_PATH:
            return await self._discover_and_forward(request, hostname, correlation_id)

        return self._not_found(RouteNotFoundError(
            hostname,
            f"No configuration found for {hostname}. Add this issuer on the proxy admin page.",
            self.config.ADMIN_URL,
        ))

    async def _discover_and_forward(self, request: Request, hostname: str, correlation_id: str) -> Response:
        outcome = await self.discover(hostname)
        if not outcome.found:
            return self._not_found(RouteNotFoundError(
                hostname,
                f"Could not auto-discover a service for {hostname}. Make sure the issuer is "
                f"running and add it on the proxy admin page.",
                self.config.ADMIN_URL,
                code="issuer_not_discovered",
            ))

        try:
            await self.store.upsert(hostname, outcome.target, AUTO_DISCOVERED_NAME.format(hostname=hostname))
        except (PersistenceError, ValidationError) as e:
            # The request is still served; the route is retried on the next miss
            log_error(f"Failed to register discovered issuer for {hostname}", component="dispatcher",
                      hostname=hostname, target=outcome.target, error=e)

        return await self._forward(request, outcome.target, correlation_id)

    async def discover(self, hostname: str) -> DiscoveryOutcome:
        """Run discovery, joining an attempt already in flight for the hostname."""
        task = self._inflight.get(hostname)
        if task is None:
            task = asyncio.create_task(self.engine.discover(hostname))
            self._inflight[hostname] = task

            def _forget(finished: asyncio.Task) -> None:
                if self._inflight.get(hostname) is finished:
                    del self._inflight[hostname]
                # Retrieved here too, in case every waiter was cancelled
                if not finished.cancelled() and finished.exception() is not None:
                    log_error(f"Discovery for {hostname} failed", component="dispatcher",
                              hostname=hostname, error=finished.exception())

            task.add_done_callback(_forget)
        else:
            log_info(f"Joining in-flight discovery for {hostname}", component="dispatcher")

        return await asyncio.shield(task)

    async def _forward(self, request: Request, target: str, correlation_id: str) -> Response:
        try:
            return await self.forwarder.forward(request, target, correlation_id)
        except BackendUnavailableError as e:
            log_error("Proxy error", component="dispatcher", target=target,
                      path=request.url.path, error=e)
            return PlainTextResponse(f"Proxy error: {e.message}", status_code=e.status_code)

    def _not_found(self, error: RouteNotFoundError) -> Response:
        log_warning(error.message, component="dispatcher", hostname=error.hostname, code=error.code)
        return JSONResponse(error.to_dict(), status_code=error.status_code)
