"""ASGI application for the issuer proxy.

Admin requests are handed to the FastAPI admin app before any routing table
lookup; everything else goes to the dispatcher through a minimal Starlette
app.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Mount, request_response

from .dispatcher import RequestDispatcher
from .forwarder import Forwarder
from ..api import create_admin_app
from ..discovery import DiscoveryEngine
from ..shared.config import Config
from ..shared.logger import log_info, log_warning, log_error
from ..storage import RouteStore, normalize_hostname


class ProxyApp:
    """Hostname-routed proxy application."""

    def __init__(
        self,
        config: Config,
        store: RouteStore,
        engine: Optional[DiscoveryEngine] = None,
        forwarder: Optional[Forwarder] = None,
    ):
        """Initialize the proxy app.

        Args:
            config: Proxy configuration
            store: Loaded routing store
            engine: Discovery engine; built from config when omitted
            forwarder: Forwarder; built from config when omitted
        """
        self.config = config
        self.store = store
        self.engine = engine or DiscoveryEngine(config)
        self.forwarder = forwarder or Forwarder(config)
        self.dispatcher = RequestDispatcher(config, store, self.engine, self.forwarder)
        self.admin_app = create_admin_app(store, config)

        self.app = Starlette(
            routes=[
                # Mounted rather than routed so no method filter applies
                Mount("/", app=request_response(self.handle_proxy)),
            ],
            lifespan=self.lifespan,
        )
        log_info(f"ProxyApp initialized with {len(store)} routes", component="proxy_app",
                 admin_hostname=config.ADMIN_HOSTNAME, admin_prefix=config.ADMIN_PREFIX)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            hostname = normalize_hostname(Headers(scope=scope).get("host"))
            client = scope.get("client")
            client_host = client[0] if client else None
            if self.dispatcher.is_admin_request(hostname, scope["path"], client_host):
                await self.admin_app(scope, receive, send)
                return
        await self.app(scope, receive, send)

    async def handle_proxy(self, request: Request) -> Response:
        """Dispatch a proxied request; unexpected failures become a 500."""
        try:
            return await self.dispatcher.handle_request(request)
        except asyncio.CancelledError:
            log_warning(f"Client disconnected during {request.url.path}", component="proxy_app")
            raise
        except (ConnectionResetError, BrokenPipeError, ConnectionAbortedError) as e:
            log_warning(f"{type(e).__name__} while handling {request.url.path}", component="proxy_app")
            return PlainTextResponse("", status_code=499)
        except Exception as e:
            log_error(f"Unhandled error for {request.url.path}", component="proxy_app", error=e)
            return PlainTextResponse(f"Proxy error: {type(e).__name__}: {e}", status_code=500)

    @asynccontextmanager
    async def lifespan(self, app):
        log_info("ProxyApp starting", component="proxy_app")
        yield
        await self.close()

    async def close(self):
        """Release HTTP clients."""
        await self.engine.close()
        await self.forwarder.close()
        log_info("ProxyApp stopped", component="proxy_app")


def create_proxy_app(config: Config, store: RouteStore) -> ProxyApp:
    """Create the proxy ASGI app for a loaded routing store."""
    return ProxyApp(config, store)
