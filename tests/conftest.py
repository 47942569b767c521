"""Pytest configuration and shared fixtures.

Backends are simulated with ``httpx.MockTransport``; the proxy itself is
driven in-process through ``httpx.ASGITransport``.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Union

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from issuer_proxy.discovery import DiscoveryEngine
from issuer_proxy.proxy import Forwarder, ProxyApp
from issuer_proxy.shared.config import Config
from issuer_proxy.shared.logging import configure_logging
from issuer_proxy.storage import RouteStore

DISCOVERY_PATH = "/.well-known/openid-credential-issuer"


class _UnreadStream(httpx.AsyncByteStream):
    """Response body that has not been read yet."""

    def __init__(self, body: bytes):
        self._body = body

    async def __aiter__(self):
        yield self._body


class BackendSimulator:
    """Stands in for the local issuer services, keyed by port.

    A behaviour is an HTTP status code, ``"refused"`` (connection error),
    ``"hang"`` (never answers) or a ``(delay_seconds, status)`` tuple.
    """

    def __init__(self):
        self.behaviours: Dict[int, Union[int, str, tuple]] = {}
        self.requests: List[httpx.Request] = []

    def set(self, port: int, behaviour: Union[int, str, tuple]) -> None:
        self.behaviours[port] = behaviour

    def requests_to(self, port: int) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.port == port]

    def probes_to(self, port: int) -> List[httpx.Request]:
        """Discovery probes, as opposed to forwarded client requests."""
        return [r for r in self.requests_to(port)
                if r.url.path == DISCOVERY_PATH and "x-forwarded-for" not in r.headers]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        behaviour = self.behaviours.get(request.url.port, "refused")

        if behaviour == "refused":
            raise httpx.ConnectError("Connection refused", request=request)
        if behaviour == "hang":
            await asyncio.sleep(30)
            behaviour = 200
        if isinstance(behaviour, tuple):
            delay, behaviour = behaviour
            await asyncio.sleep(delay)

        prepared = httpx.Response(
            behaviour,
            json={
                "port": request.url.port,
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query.decode(),
                "body": request.content.decode(),
                "host": request.headers.get("host"),
                "x_forwarded_for": request.headers.get("x-forwarded-for"),
                "x_forwarded_host": request.headers.get("x-forwarded-host"),
                "correlation_id": request.headers.get("x-correlation-id"),
            },
            headers=[("set-cookie", "session=abc"), ("set-cookie", "theme=dark")],
        )
        # Hand back an unread body, as a real backend connection would
        return httpx.Response(
            prepared.status_code,
            headers=prepared.headers.multi_items(),
            stream=_UnreadStream(prepared.content),
        )


@pytest.fixture(scope="session", autouse=True)
def structured_logging():
    """Route structlog through stdlib logging so pytest captures it."""
    configure_logging(Config(LOG_LEVEL="DEBUG", LOG_FORMAT="console"))


@pytest.fixture
def config(tmp_path) -> Config:
    """Isolated configuration with a temp routing file and short probes."""
    return Config(
        ROUTES_FILE=str(tmp_path / "issuers-config.json"),
        CERT_FILE=str(tmp_path / "cert.pem"),
        KEY_FILE=str(tmp_path / "key.pem"),
        DISCOVERY_PORTS=[5000, 5001],
        DISCOVERY_PROBE_TIMEOUT_MS=200,
        DISCOVERY_MODE="sequential",
        ADMIN_URL="https://localhost:8443/proxy-admin",
    )


@pytest.fixture
def store(config) -> RouteStore:
    """Routing store loaded from an empty directory (defaults seeded)."""
    route_store = RouteStore(config.ROUTES_FILE)
    route_store.load()
    return route_store


@pytest.fixture
def backends() -> BackendSimulator:
    return BackendSimulator()


@pytest.fixture
async def backend_client(backends):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backends.handle)) as client:
        yield client


@pytest.fixture
def engine(config, backend_client) -> DiscoveryEngine:
    return DiscoveryEngine(config, client=backend_client)


@pytest.fixture
def forwarder(config, backend_client) -> Forwarder:
    return Forwarder(config, client=backend_client)


@pytest.fixture
def proxy_app(config, store, engine, forwarder) -> ProxyApp:
    return ProxyApp(config, store, engine=engine, forwarder=forwarder)


@pytest.fixture
async def proxy_client(proxy_app):
    """Client talking to the proxy from a loopback address."""
    transport = httpx.ASGITransport(app=proxy_app, client=("127.0.0.1", 51000))
    async with httpx.AsyncClient(transport=transport, base_url="https://proxy.test") as client:
        yield client


@pytest.fixture
async def remote_client(proxy_app):
    """Client talking to the proxy from a non-loopback address."""
    transport = httpx.ASGITransport(app=proxy_app, client=("203.0.113.9", 51000))
    async with httpx.AsyncClient(transport=transport, base_url="https://proxy.test") as client:
        yield client


def write_self_signed(cert_path, key_path, hostnames, days: int = 365):
    """Write a self-signed certificate and key covering ``hostnames``."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, hostnames[0]),
    ])
    now = datetime.now(timezone.utc)
    cert = x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer
    ).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        now - timedelta(days=1)
    ).not_valid_after(
        now + timedelta(days=days)
    ).add_extension(
        x509.SubjectAlternativeName([x509.DNSName(name) for name in hostnames]),
        critical=False,
    ).sign(key, hashes.SHA256())

    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(key_path, "wb") as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ))
