"""HTTPS proxy listener and HTTP redirect listener, both on Hypercorn."""

from typing import Awaitable, Callable, Optional

from hypercorn.asyncio import serve
from hypercorn.config import Config as HypercornConfig
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import RedirectResponse
from starlette.routing import Route

from .tls import TLSMaterial
from ..shared.config import Config
from ..shared.logger import log_info, log_warning
from ..storage import normalize_hostname

ShutdownTrigger = Callable[[], Awaitable[None]]


def _hypercorn_config(bind: str, config: Config) -> HypercornConfig:
    hypercorn_config = HypercornConfig()
    hypercorn_config.bind = [bind]
    hypercorn_config.loglevel = config.LOG_LEVEL.upper() if config.LOG_LEVEL.upper() != "TRACE" else "DEBUG"
    hypercorn_config.keep_alive_timeout = 60
    hypercorn_config.shutdown_timeout = 2  # Max wait for graceful shutdown
    hypercorn_config.ssl_handshake_timeout = 5
    return hypercorn_config


class ProxyHTTPSServer:
    """Serves the proxy ASGI app over TLS."""

    def __init__(self, app, config: Config, tls: TLSMaterial):
        """Initialize HTTPS server.

        Args:
            app: ASGI application to serve
            config: Supplies bind host and port
            tls: Verified certificate and key files
        """
        self.app = app
        self.config = config
        self.tls = tls
        self.bind = f"{config.SERVER_HOST}:{config.HTTPS_PORT}"

    def build_config(self) -> HypercornConfig:
        hypercorn_config = _hypercorn_config(self.bind, self.config)
        hypercorn_config.certfile = self.tls.cert_file
        hypercorn_config.keyfile = self.tls.key_file
        return hypercorn_config

    async def serve(self, shutdown_trigger: Optional[ShutdownTrigger] = None) -> None:
        """Serve until the shutdown trigger completes."""
        log_info(f"HTTPS reverse proxy listening on https://{self.bind}", component="https_server")
        log_info(f"Admin console: https://{self.config.ADMIN_HOSTNAME}"
                 f"{'' if self.config.HTTPS_PORT == 443 else f':{self.config.HTTPS_PORT}'}"
                 f"{self.config.ADMIN_PREFIX}", component="https_server")
        await serve(self.app, self.build_config(), shutdown_trigger=shutdown_trigger)
        log_info("HTTPS server stopped", component="https_server")


def create_redirect_app(config: Config) -> Starlette:
    """App that redirects every plain HTTP request to its HTTPS equivalent."""
    port_suffix = "" if config.HTTPS_PORT == 443 else f":{config.HTTPS_PORT}"

    async def redirect(request: Request):
        host = normalize_hostname(request.headers.get("host")) or config.ADMIN_HOSTNAME
        url = f"https://{host}{port_suffix}{request.url.path}"
        if request.url.query:
            url += f"?{request.url.query}"
        return RedirectResponse(url, status_code=301)

    return Starlette(routes=[
        Route("/{path:path}", redirect, methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]),
    ])


class RedirectHTTPServer:
    """Plain HTTP listener that only redirects to HTTPS."""

    def __init__(self, config: Config):
        self.config = config
        self.bind = f"{config.SERVER_HOST}:{config.HTTP_PORT}"
        self.app = create_redirect_app(config)

    def build_config(self) -> HypercornConfig:
        return _hypercorn_config(self.bind, self.config)

    async def serve(self, shutdown_trigger: Optional[ShutdownTrigger] = None) -> None:
        log_info(f"HTTP redirect server listening on http://{self.bind}", component="http_server")
        try:
            await serve(self.app, self.build_config(), shutdown_trigger=shutdown_trigger)
        except OSError as e:
            # HTTPS keeps serving without the redirect listener
            log_warning(f"HTTP redirect server unavailable on {self.bind}: {e}", component="http_server")
            if shutdown_trigger:
                await shutdown_trigger()
        log_info("HTTP redirect server stopped", component="http_server")
