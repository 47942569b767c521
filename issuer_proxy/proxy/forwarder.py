"""Reverse-proxy transport: forwards a request to a backend origin and
streams the backend's response back to the client."""

import asyncio
import time
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from ..shared.config import Config
from ..shared.errors import BackendUnavailableError
from ..shared.logger import log_debug, log_info, log_error, log_trace

HOP_BY_HOP_HEADERS = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
}


class _RejectAllCookies(DefaultCookiePolicy):
    """The shared client must never keep one client's cookies for another."""

    def set_ok(self, cookie, request):
        return False

    def return_ok(self, cookie, request):
        return False


class Forwarder:
    """Forwards requests verbatim to a backend origin."""

    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None):
        """Initialize forwarder.

        Args:
            config: Supplies timeouts and backend TLS verification
            client: Optional HTTP client, mainly for tests; one is created otherwise
        """
        self.correlation_header = config.LOG_CORRELATION_ID_HEADER
        # Overall budget for one exchange, headers and body included
        self.request_timeout = float(config.PROXY_REQUEST_TIMEOUT)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=False,
            verify=config.BACKEND_VERIFY_TLS,  # False trusts self-signed local issuers
            cookies=CookieJar(policy=_RejectAllCookies()),
            timeout=httpx.Timeout(
                connect=float(config.PROXY_CONNECT_TIMEOUT),
                read=float(config.PROXY_REQUEST_TIMEOUT),
                write=10.0,
                pool=None,
            ),
        )
        log_info(f"Forwarder initialized with timeouts: read={config.PROXY_REQUEST_TIMEOUT}s, "
                 f"connect={config.PROXY_CONNECT_TIMEOUT}s, verify_tls={config.BACKEND_VERIFY_TLS}",
                 component="forwarder")

    async def forward(self, request: Request, target: str, correlation_id: Optional[str] = None) -> Response:
        """Forward a request to ``target`` and stream the response back.

        Raises:
            BackendUnavailableError: the backend could not be reached or
                failed before sending response headers
        """
        start_time = time.time()
        deadline = asyncio.get_running_loop().time() + self.request_timeout
        target_url = f"{target.rstrip('/')}{request.url.path}"
        if request.url.query:
            target_url += f"?{request.url.query}"

        headers = self._prepare_headers(request, correlation_id)

        content = None
        if "content-length" in request.headers or "transfer-encoding" in request.headers:
            content = request.stream()

        upstream_request = self.client.build_request(
            method=request.method,
            url=target_url,
            headers=headers,
            content=content,
        )
        log_trace("Forwarding request headers", component="forwarder",
                  target_url=target_url, headers=[name for name, _ in headers])

        try:
            upstream_response = await asyncio.wait_for(
                self.client.send(upstream_request, stream=True), timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise BackendUnavailableError(target, f"Backend did not respond within {self.request_timeout:g}s") from e
        except (httpx.HTTPError, OSError) as e:
            raise BackendUnavailableError(target, f"{type(e).__name__}: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        log_info("Proxy request successful", component="forwarder",
                 method=request.method, path=request.url.path, target_url=target_url,
                 status=upstream_response.status_code, duration_ms=round(duration_ms, 2))

        response = StreamingResponse(
            self._stream_response(upstream_response, target, target_url, deadline),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        response.raw_headers.extend(self._filter_response_headers(upstream_response.headers))
        return response

    def _prepare_headers(self, request: Request, correlation_id: Optional[str]) -> List[Tuple[str, str]]:
        """Copy client headers minus hop-by-hop ones.

        The Host header is dropped so httpx derives it from the target origin.
        """
        hop_by_hop = set(HOP_BY_HOP_HEADERS)
        hop_by_hop.add("host")
        for value in request.headers.get("connection", "").split(","):
            if value.strip():
                hop_by_hop.add(value.strip().lower())

        # Rewritten below
        hop_by_hop.update(("x-forwarded-for", "x-forwarded-proto", "x-forwarded-host", self.correlation_header.lower()))

        headers = [
            (name, value) for name, value in request.headers.items()
            if name.lower() not in hop_by_hop
        ]

        # Add X-Forwarded headers
        client_ip = request.client.host if request.client else "unknown"
        prior = request.headers.get("x-forwarded-for")
        headers.append(("x-forwarded-for", f"{prior}, {client_ip}" if prior else client_ip))
        headers.append(("x-forwarded-proto", request.url.scheme))
        headers.append(("x-forwarded-host", request.headers.get("host", "")))

        if correlation_id:
            headers.append((self.correlation_header, correlation_id))

        return headers

    def _filter_response_headers(self, headers: httpx.Headers) -> List[Tuple[bytes, bytes]]:
        """Drop hop-by-hop headers, keeping repeated headers such as Set-Cookie."""
        hop_by_hop = set(HOP_BY_HOP_HEADERS)
        for value in headers.get("connection", "").split(","):
            if value.strip():
                hop_by_hop.add(value.strip().lower())

        return [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in headers.multi_items()
            if name.lower() not in hop_by_hop
        ]

    async def _stream_response(
        self, response: httpx.Response, target: str, target_url: str, deadline: float
    ) -> AsyncIterator[bytes]:
        """Stream the raw (still encoded) response body.

        The per-read timeout alone would let a backend trickling bytes hold
        the connection forever, so the whole body must arrive by ``deadline``.

        Raises:
            BackendUnavailableError: the deadline passed mid-body
        """
        loop = asyncio.get_running_loop()
        chunks = response.aiter_raw()
        try:
            while True:
                remaining = deadline - loop.time()
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    log_error("Upstream response exceeded the request timeout", component="forwarder",
                              target_url=target_url, timeout=self.request_timeout)
                    raise BackendUnavailableError(
                        target, f"Backend response not completed within {self.request_timeout:g}s"
                    ) from e
                yield chunk
        except httpx.HTTPError as e:
            log_error("Upstream failed while streaming response", component="forwarder",
                      target_url=target_url, error=e)
            raise
        finally:
            await response.aclose()
            log_debug("Upstream response closed", component="forwarder", target_url=target_url)

    async def close(self):
        """Close the HTTP client if this forwarder created it."""
        if self._owns_client:
            await self.client.aclose()
