"""Issuer discovery by probing conventional local ports.

An attempt walks an ordered list of candidate ports and asks each one for the
well-known credential issuer metadata. The first port answering 200 is the
issuer for the hostname under discovery.

States of an attempt:

    PROBING(i) --200--------------> FOUND(origin of ports[i])
    PROBING(i) --error/timeout/!200--> PROBING(i + 1)
    PROBING(len(ports)) ------------> EXHAUSTED

In concurrent mode every candidate is probed at once under one shared
deadline; the first success by completion order wins and the remaining
probes are cancelled.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import httpx

from ..shared.config import Config
from ..shared.errors import DiscoveryTimeoutError
from ..shared.logger import log_debug, log_info, log_warning, log_trace


class ProbeState(str, Enum):
    """States of a discovery attempt."""
    PROBING = "probing"
    FOUND = "found"
    EXHAUSTED = "exhausted"


@dataclass
class ProbeResult:
    """Result of probing a single port."""
    port: int
    url: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass
class DiscoveryAttempt:
    """Transient state of one discovery run for one hostname."""
    hostname: str
    candidate_ports: Sequence[int]
    probe_timeout: float
    current_index: int = 0
    state: ProbeState = ProbeState.PROBING
    target: Optional[str] = None
    results: List[ProbeResult] = field(default_factory=list)

    def __post_init__(self):
        if not self.candidate_ports:
            self.state = ProbeState.EXHAUSTED

    @property
    def current_port(self) -> int:
        return self.candidate_ports[self.current_index]

    def advance(self) -> None:
        """Move past a failed port."""
        self.current_index += 1
        if self.current_index >= len(self.candidate_ports):
            self.state = ProbeState.EXHAUSTED

    def found(self, index: int, target: str) -> None:
        self.current_index = index
        self.target = target
        self.state = ProbeState.FOUND

    def exhaust(self) -> None:
        self.current_index = len(self.candidate_ports)
        self.state = ProbeState.EXHAUSTED


@dataclass
class DiscoveryOutcome:
    """What a finished attempt reports back to the dispatcher."""
    hostname: str
    target: Optional[str] = None
    port: Optional[int] = None
    probes: List[ProbeResult] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.target is not None


class DiscoveryEngine:
    """Resolves unknown hostnames by probing candidate backend ports."""

    def __init__(self, config: Config, client: Optional[httpx.AsyncClient] = None):
        """Initialize the engine.

        Args:
            config: Supplies ports, timeout, probe scheme/host and mode
            client: Optional HTTP client, mainly for tests; one is created otherwise
        """
        self.ports = list(config.DISCOVERY_PORTS)
        self.timeout = config.probe_timeout
        self.scheme = config.DISCOVERY_SCHEME
        self.host = config.DISCOVERY_HOST
        self.path = config.DISCOVERY_PATH
        self.mode = config.DISCOVERY_MODE

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=False,
            verify=config.BACKEND_VERIFY_TLS,  # Local issuers use self-signed certificates
            timeout=httpx.Timeout(self.timeout),
        )
        log_info(f"DiscoveryEngine initialized: mode={self.mode}, ports={self.ports}, timeout={self.timeout}s",
                 component="discovery")

    def origin_for(self, port: int) -> str:
        return f"{self.scheme}://{self.host}:{port}"

    async def discover(self, hostname: str) -> DiscoveryOutcome:
        """Run one discovery attempt for a hostname.

        Probe failures never raise; an exhausted attempt is reported through
        an outcome whose ``found`` is False.
        """
        attempt = DiscoveryAttempt(
            hostname=hostname,
            candidate_ports=tuple(self.ports),
            probe_timeout=self.timeout,
        )
        log_info(f"Discovering issuer for {hostname}", component="discovery",
                 hostname=hostname, mode=self.mode, ports=list(attempt.candidate_ports))

        if self.mode == "concurrent":
            await self._run_concurrent(attempt)
        else:
            await self._run_sequential(attempt)

        outcome = DiscoveryOutcome(hostname=hostname, probes=list(attempt.results))
        if attempt.state is ProbeState.FOUND:
            outcome.target = attempt.target
            outcome.port = attempt.current_port
            log_info(f"Issuer for {hostname} found on port {outcome.port}", component="discovery",
                     hostname=hostname, target=outcome.target, probes=len(outcome.probes))
        else:
            log_warning(f"No issuer found for {hostname}", component="discovery",
                        hostname=hostname, probes=len(outcome.probes))
        return outcome

    async def _run_sequential(self, attempt: DiscoveryAttempt) -> None:
        while attempt.state is ProbeState.PROBING:
            port = attempt.current_port
            result = await self.probe(port)
            attempt.results.append(result)
            if result.ok:
                attempt.found(attempt.current_index, self.origin_for(port))
            else:
                attempt.advance()

    async def _run_concurrent(self, attempt: DiscoveryAttempt) -> None:
        if attempt.state is not ProbeState.PROBING:
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        index_of: Dict[asyncio.Task, int] = {
            asyncio.create_task(self.probe(port)): index
            for index, port in enumerate(attempt.candidate_ports)
        }
        pending = set(index_of)

        try:
            while pending and attempt.state is ProbeState.PROBING:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                # Probes finishing in the same wakeup are ranked by list order
                for task in sorted(done, key=index_of.__getitem__):
                    result = task.result()
                    attempt.results.append(result)
                    if result.ok and attempt.state is ProbeState.PROBING:
                        attempt.found(index_of[task], self.origin_for(result.port))
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                log_trace(f"Cancelled {len(pending)} outstanding probes", component="discovery",
                          hostname=attempt.hostname)

        if attempt.state is ProbeState.PROBING:
            attempt.exhaust()

    async def probe(self, port: int) -> ProbeResult:
        """Probe one port and describe the result; never raises for I/O failures."""
        url = f"{self.origin_for(port)}{self.path}"
        result = ProbeResult(port=port, url=url)
        start = time.monotonic()
        try:
            result.status_code = await self._fetch_status(port, url)
        except DiscoveryTimeoutError as e:
            result.error = e.message
        except (httpx.HTTPError, OSError) as e:
            result.error = f"{type(e).__name__}: {e}"
        result.duration_ms = (time.monotonic() - start) * 1000

        log_debug(f"Probe {url} -> {result.status_code or result.error}", component="discovery",
                  port=port, status=result.status_code, duration_ms=round(result.duration_ms, 2))
        return result

    async def _fetch_status(self, port: int, url: str) -> int:
        """GET the discovery path, cancelling the request when the timeout expires."""
        try:
            response = await asyncio.wait_for(self.client.get(url), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise DiscoveryTimeoutError(port, self.timeout)
        return response.status_code

    async def close(self):
        """Close the HTTP client if this engine created it."""
        if self._owns_client:
            await self.client.aclose()
