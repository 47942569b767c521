"""Main entry point for the issuer proxy."""

import asyncio
import signal
import sys

from .proxy import create_proxy_app
from .server import ProxyHTTPSServer, RedirectHTTPServer, load_tls_material
from .server.tls import warn_uncovered_hostnames
from .shared.config import Config, get_config
from .shared.errors import StartupError
from .shared.logger import log_info, log_error
from .shared.logging import configure_logging
from .shared.python_logger_config import setup_python_logging, silence_noisy_loggers
from .storage import RouteStore


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass


async def run_server(config: Config) -> None:
    """Load state, then serve HTTPS and the HTTP redirect until signalled."""
    tls = load_tls_material(config)

    store = RouteStore(config.ROUTES_FILE)
    routes = store.load()
    warn_uncovered_hostnames(tls, routes)

    app = create_proxy_app(config, store)

    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    https_server = ProxyHTTPSServer(app, config, tls)
    http_server = RedirectHTTPServer(config)

    log_info("Starting issuer proxy", component="main", routes=len(store),
             https_port=config.HTTPS_PORT, http_port=config.HTTP_PORT)
    await asyncio.gather(
        https_server.serve(shutdown_event.wait),
        http_server.serve(shutdown_event.wait),
    )


def main():
    """Run the proxy; exits with status 1 when startup fails."""
    setup_python_logging()
    silence_noisy_loggers()

    try:
        config = get_config()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config)

    try:
        asyncio.run(run_server(config))
    except StartupError as e:
        log_error("Startup failed", component="main", error=e)
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        log_info("Interrupted, shutting down", component="main")


if __name__ == "__main__":
    main()
