"""Admin API endpoints.

Reachable only through the admin gate in the dispatcher: the admin hostname
plus (by default) a loopback client address.
"""

from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from .console import render_console
from ..shared.config import Config
from ..shared.errors import PersistenceError, ValidationError
from ..shared.logger import log_info, log_warning, log_error
from ..storage import RouteStore

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def _error(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body = {"error": error}
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code)


def _is_filled(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def create_admin_router(store: RouteStore, config: Config) -> APIRouter:
    """Create router for routing table administration.

    Args:
        store: Routing store to read and mutate
        config: Supplies the admin prefix

    Returns:
        APIRouter with the console, list and add endpoints
    """
    router = APIRouter()
    prefix = config.ADMIN_PREFIX.rstrip("/")

    @router.get(prefix, response_class=HTMLResponse)
    async def console():
        """Operator console page."""
        return HTMLResponse(render_console(config))

    @router.get(f"{prefix}/list")
    async def list_issuers():
        """Return the full routing table."""
        return JSONResponse(store.to_dict())

    @router.post(f"{prefix}/add")
    async def add_issuer(req: Request):
        """Register or overwrite an issuer.

        Success is only reported once the table is on disk.
        """
        try:
            payload = await req.json()
        except ValueError:
            log_warning("Rejected add request with unparsable body", component="admin_api")
            return _error(400, "malformed body")

        if not isinstance(payload, dict):
            return _error(400, "malformed body")

        hostname = payload.get("hostname")
        target = payload.get("target")
        name = payload.get("name")

        if not _is_filled(hostname) or not _is_filled(target):
            log_warning("Rejected add request with missing fields", component="admin_api",
                        hostname=hostname, target=target)
            return _error(400, "missing required fields")

        if name is not None and not isinstance(name, str):
            return _error(400, "malformed body")

        try:
            route = await store.upsert(hostname.strip(), target.strip(), (name or "").strip() or None)
        except ValidationError as e:
            return _error(400, e.code, e.message)
        except PersistenceError as e:
            log_error("Failed to persist issuer", component="admin_api", hostname=hostname, error=e)
            return _error(500, "persistence failed")

        log_info(f"Issuer {route.hostname} added via admin API", component="admin_api",
                 hostname=route.hostname, target=route.target)
        return {
            "success": True,
            "message": "Issuer added",
            "issuer": {"hostname": route.hostname, **route.to_record()},
        }

    @router.api_route(f"{prefix}/{{path:path}}", methods=ALL_METHODS)
    async def unknown_endpoint(path: str):
        return _error(404, "admin endpoint not found")

    return router


def create_admin_app(store: RouteStore, config: Config) -> FastAPI:
    """Build the ASGI app the dispatcher hands admin requests to."""
    app = FastAPI(
        title="Issuer Proxy Admin",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.include_router(create_admin_router(store, config))
    return app
