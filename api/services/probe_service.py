import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

from api.services.exceptions import ProbeNetworkFailure, ProbeTimeout

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_MS = int(os.getenv("PROBE_TIMEOUT_MS", "10000"))
FALLBACK_TIMEOUT_MS = int(os.getenv("FALLBACK_TIMEOUT_MS", "8000"))
SLOW_THRESHOLD_MS = int(os.getenv("SLOW_THRESHOLD_MS", "5000"))
USER_AGENT = os.getenv("PROBE_USER_AGENT", "keepawake/1.0 (+uptime keep-alive probe)")

# The peer answered, but the answer could not be read. These go to the fallback probe.
OPAQUE_ERRORS = (httpx.RemoteProtocolError, httpx.DecodingError, httpx.TooManyRedirects)


class Classification(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    classification: Classification
    latency_ms: Optional[int]
    detail: Optional[str] = None
    http_status: Optional[int] = None
    via_fallback: bool = False


class _OpaqueResponse(Exception):
    pass


def classify_fallback(elapsed_ms: float, slow_threshold_ms: int = SLOW_THRESHOLD_MS) -> Classification:
    """
    Classify a fallback probe that observed a signal after elapsed_ms.
    Anything faster than the threshold is a success, anything slower is a warning.
    """
    if elapsed_ms < slow_threshold_ms:
        return Classification.SUCCESS
    return Classification.WARNING


class ProbeExecutor:
    """
    Performs one reachability check against one URL and classifies the outcome.

    The primary attempt is a plain GET bounded by timeout_ms. When the peer
    answers with something the client cannot observe (protocol garbage, broken
    encoding, redirect loops), a passive streaming GET is issued instead and
    classified by how long it takes to see any signal at all.

    probe() never raises; every failure mode resolves to a ProbeResult.
    """

    def __init__(
        self,
        timeout_ms: int = PROBE_TIMEOUT_MS,
        fallback_timeout_ms: int = FALLBACK_TIMEOUT_MS,
        slow_threshold_ms: int = SLOW_THRESHOLD_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_ms = timeout_ms
        self.fallback_timeout_ms = fallback_timeout_ms
        self.slow_threshold_ms = slow_threshold_ms
        self.transport = transport
        self.clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            headers={"User-Agent": USER_AGENT, "Cache-Control": "no-cache"},
            follow_redirects=True,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self.clock() - started) * 1000))

    async def probe(self, url: str, timeout_ms: Optional[int] = None) -> ProbeResult:
        timeout_ms = timeout_ms or self.timeout_ms
        started = self.clock()
        try:
            async with self._client() as client:
                try:
                    response = await self._primary(client, url, timeout_ms)
                except _OpaqueResponse as e:
                    logger.debug(f"Primary probe of {url} unobservable ({e}), falling back")
                    return await self._fallback(client, url)
            return ProbeResult(
                Classification.SUCCESS,
                self._elapsed_ms(started),
                http_status=response.status_code,
            )
        except ProbeTimeout as e:
            return ProbeResult(Classification.ERROR, self._elapsed_ms(started), str(e))
        except ProbeNetworkFailure as e:
            return ProbeResult(Classification.ERROR, self._elapsed_ms(started), str(e))
        except Exception as e:
            logger.exception(f"Unexpected failure probing {url}")
            return ProbeResult(Classification.ERROR, None, f"{type(e).__name__}: {e}")

    async def _primary(self, client: httpx.AsyncClient, url: str, timeout_ms: int) -> httpx.Response:
        timeout_s = timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                client.get(url, timeout=httpx.Timeout(timeout_s)),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProbeTimeout(f"timeout after {timeout_ms}ms")
        except OPAQUE_ERRORS as e:
            raise _OpaqueResponse(str(e) or type(e).__name__)
        except httpx.HTTPError as e:
            raise ProbeNetworkFailure(str(e) or type(e).__name__)

    async def _fallback(self, client: httpx.AsyncClient, url: str) -> ProbeResult:
        started = self.clock()
        timeout_s = self.fallback_timeout_ms / 1000
        try:
            status = await asyncio.wait_for(self._await_signal(client, url, timeout_s), timeout=timeout_s)
        except (asyncio.TimeoutError, ProbeTimeout):
            return ProbeResult(
                Classification.ERROR,
                self._elapsed_ms(started),
                f"no response signal within {self.fallback_timeout_ms}ms",
                via_fallback=True,
            )
        except ProbeNetworkFailure as e:
            return ProbeResult(Classification.ERROR, self._elapsed_ms(started), str(e), via_fallback=True)

        elapsed = self._elapsed_ms(started)
        classification = classify_fallback(elapsed, self.slow_threshold_ms)
        detail = "slow but reachable" if classification == Classification.WARNING else None
        return ProbeResult(classification, elapsed, detail, http_status=status, via_fallback=True)

    async def _await_signal(self, client: httpx.AsyncClient, url: str, timeout_s: float) -> Optional[int]:
        """Return the status code once headers arrive, or None if the peer answered with garbage."""
        params = {"_ping": str(int(time.time() * 1000))}
        try:
            async with client.stream("GET", url, params=params, timeout=httpx.Timeout(timeout_s)) as response:
                return response.status_code
        except httpx.TimeoutException:
            raise ProbeTimeout(f"timeout after {self.fallback_timeout_ms}ms")
        except (httpx.ProtocolError, httpx.DecodingError, httpx.TooManyRedirects):
            return None
        except httpx.HTTPError as e:
            raise ProbeNetworkFailure(str(e) or type(e).__name__)
