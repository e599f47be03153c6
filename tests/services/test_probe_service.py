"""
Unit tests for the probe executor
"""
import asyncio
import pytest
import httpx
from api.services.probe_service import (
    Classification,
    ProbeExecutor,
    classify_fallback,
)


def make_executor(handler, **kwargs):
    return ProbeExecutor(transport=httpx.MockTransport(handler), **kwargs)


def is_fallback(request: httpx.Request) -> bool:
    return "_ping" in request.url.params


def fixed_clock(*values):
    ticks = iter(values)
    return lambda: next(ticks)


class TestPrimaryProbe:
    """Test the plain GET path"""

    def test_response_is_success(self):
        async def handler(request):
            return httpx.Response(204)

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.SUCCESS
        assert result.http_status == 204
        assert result.latency_ms is not None and result.latency_ms >= 0
        assert result.via_fallback is False

    def test_server_error_response_still_counts_as_reachable(self):
        async def handler(request):
            return httpx.Response(503)

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.SUCCESS
        assert result.http_status == 503

    def test_sends_no_cache_header(self):
        seen = {}

        async def handler(request):
            seen["cache_control"] = request.headers.get("cache-control")
            return httpx.Response(200)

        asyncio.run(make_executor(handler).probe("https://example.com"))

        assert seen["cache_control"] == "no-cache"

    def test_connection_refused_is_error(self):
        async def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = asyncio.run(make_executor(handler).probe("https://down.example.com"))

        assert result.classification == Classification.ERROR
        assert "connection refused" in result.detail
        assert result.latency_ms is not None
        assert result.via_fallback is False

    def test_network_failure_does_not_fall_back(self):
        calls = []

        async def handler(request):
            calls.append(request)
            raise httpx.ConnectError("name resolution failed", request=request)

        asyncio.run(make_executor(handler).probe("https://nowhere.invalid"))

        assert len(calls) == 1

    def test_timeout_cancels_request_and_is_error(self):
        async def handler(request):
            await asyncio.sleep(2)
            return httpx.Response(200)

        result = asyncio.run(make_executor(handler, timeout_ms=50).probe("https://slow.example.com"))

        assert result.classification == Classification.ERROR
        assert result.detail == "timeout after 50ms"
        assert 40 <= result.latency_ms < 2000

    def test_timeout_override_per_call(self):
        async def handler(request):
            await asyncio.sleep(2)
            return httpx.Response(200)

        executor = make_executor(handler, timeout_ms=10000)
        result = asyncio.run(executor.probe("https://slow.example.com", timeout_ms=30))

        assert result.classification == Classification.ERROR
        assert result.detail == "timeout after 30ms"

    def test_unexpected_exception_never_escapes(self):
        async def handler(request):
            raise RuntimeError("boom")

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.ERROR
        assert result.latency_ms is None
        assert "boom" in result.detail


class TestFallbackProbe:
    """Test the passive probe used when the primary answer is unobservable"""

    def test_opaque_response_falls_back_to_signal_probe(self):
        async def handler(request):
            if is_fallback(request):
                return httpx.Response(200)
            raise httpx.RemoteProtocolError("malformed response", request=request)

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.SUCCESS
        assert result.via_fallback is True
        assert result.http_status == 200

    def test_fallback_keeps_existing_query(self):
        seen = []

        async def handler(request):
            if is_fallback(request):
                seen.append(request.url)
                return httpx.Response(200)
            raise httpx.DecodingError("bad gzip", request=request)

        asyncio.run(make_executor(handler).probe("https://example.com/health?a=1"))

        assert seen[0].params["a"] == "1"
        assert seen[0].params["_ping"].isdigit()

    def test_failure_signal_counts_as_reachable(self):
        async def handler(request):
            raise httpx.RemoteProtocolError("server hung up", request=request)

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.SUCCESS
        assert result.via_fallback is True
        assert result.http_status is None

    def test_slow_signal_is_warning(self):
        async def handler(request):
            if is_fallback(request):
                await asyncio.sleep(0.1)
                return httpx.Response(200)
            raise httpx.RemoteProtocolError("malformed response", request=request)

        executor = make_executor(handler, slow_threshold_ms=20, fallback_timeout_ms=2000)
        result = asyncio.run(executor.probe("https://example.com"))

        assert result.classification == Classification.WARNING
        assert result.detail == "slow but reachable"
        assert result.latency_ms >= 20

    def test_no_signal_before_fallback_timeout_is_error(self):
        async def handler(request):
            if is_fallback(request):
                await asyncio.sleep(2)
                return httpx.Response(200)
            raise httpx.RemoteProtocolError("malformed response", request=request)

        executor = make_executor(handler, fallback_timeout_ms=50)
        result = asyncio.run(executor.probe("https://example.com"))

        assert result.classification == Classification.ERROR
        assert result.via_fallback is True
        assert "no response signal" in result.detail

    def test_network_failure_during_fallback_is_error(self):
        async def handler(request):
            if is_fallback(request):
                raise httpx.ConnectError("connection reset", request=request)
            raise httpx.RemoteProtocolError("malformed response", request=request)

        result = asyncio.run(make_executor(handler).probe("https://example.com"))

        assert result.classification == Classification.ERROR
        assert result.via_fallback is True

    @pytest.mark.parametrize(
        "signal_at,expected",
        [
            (4.999, Classification.SUCCESS),
            (5.001, Classification.WARNING),
        ],
    )
    def test_signal_timing_boundary(self, signal_at, expected):
        async def handler(request):
            if is_fallback(request):
                return httpx.Response(200)
            raise httpx.RemoteProtocolError("malformed response", request=request)

        # probe start, fallback start, signal observed
        executor = make_executor(handler, clock=fixed_clock(0.0, 0.0, signal_at))
        result = asyncio.run(executor.probe("https://example.com"))

        assert result.classification == expected
        assert result.latency_ms == int(round(signal_at * 1000))


class TestClassifyFallback:
    @pytest.mark.parametrize(
        "elapsed_ms,expected",
        [
            (0, Classification.SUCCESS),
            (4999, Classification.SUCCESS),
            (5000, Classification.WARNING),
            (5001, Classification.WARNING),
            (7999, Classification.WARNING),
        ],
    )
    def test_threshold(self, elapsed_ms, expected):
        assert classify_fallback(elapsed_ms, 5000) == expected
