"""
Tests for the caller-facing request functions.
"""

import asyncio
import threading

import pytest

from easy_http_core import arequest, async_request, request
from easy_http_core.async_request import AsyncRequest
from easy_http_core.exceptions import CancelledError, InvalidHeadersError, TransportFailureError
from easy_http_core.transport.base import TIMED_OUT


class TestBlockingRequest:
    """Test request()."""

    def test_request(self, mock_transport_factory, registry, sample_chunks, sample_headers) -> None:
        """Test a blocking request returns the full response."""
        factory = mock_transport_factory(chunks=sample_chunks, headers=sample_headers)

        response = request("http://mock/", transport_factory=factory, registry=registry)

        assert response.body == b"Hello, World!"
        assert response.status_code == 200
        assert response.headers.get_all("Set-Cookie") == ["a=1", "b=2"]
        assert factory.created[0].closed

    def test_request_releases_callbacks(self, mock_transport_factory, registry, sample_chunks) -> None:
        """Test callbacks are released once the request returns."""
        factory = mock_transport_factory(chunks=sample_chunks)
        seen = []

        request(
            "http://mock/",
            {"on_data": seen.append},
            transport_factory=factory,
            registry=registry,
        )

        assert seen == sample_chunks
        assert len(registry) == 0

    def test_request_failure(self, mock_transport_factory, registry) -> None:
        """Test a failed transfer raises TransportFailureError."""
        factory = mock_transport_factory(failure=TIMED_OUT, fail_early=True)

        with pytest.raises(TransportFailureError, match="Timeout was reached"):
            request("http://mock/", transport_factory=factory, registry=registry)

    def test_invalid_headers(self, mock_transport_factory, registry) -> None:
        """Test option errors surface before anything starts."""
        factory = mock_transport_factory()

        with pytest.raises(InvalidHeadersError):
            request("http://mock/", {"headers": ["A: 1"]}, transport_factory=factory, registry=registry)

        assert factory.created == []


class TestAsyncRequestFunction:
    """Test async_request()."""

    def test_returns_running_request(self, mock_transport_factory, registry, sample_chunks) -> None:
        """Test async_request hands back a request to poll."""
        gate = threading.Event()
        factory = mock_transport_factory(chunks=sample_chunks, gate=gate)

        unit = async_request("http://mock/", transport_factory=factory, registry=registry)
        try:
            assert isinstance(unit, AsyncRequest)
            assert not unit.is_done()
            gate.set()
            assert unit.response().body == b"Hello, World!"
        finally:
            unit.dispose()


class TestAsyncioFacade:
    """Test the asyncio entry points."""

    @pytest.mark.asyncio
    async def test_arequest(self, mock_transport_factory, registry, sample_chunks) -> None:
        """Test awaiting a response."""
        factory = mock_transport_factory(chunks=sample_chunks)

        response = await arequest("http://mock/", transport_factory=factory, registry=registry)

        assert response.body == b"Hello, World!"
        assert factory.created[0].closed

    @pytest.mark.asyncio
    async def test_aresponse_does_not_block_loop(self, mock_transport_factory, registry) -> None:
        """Test the event loop keeps running while the worker waits."""
        gate = threading.Event()
        factory = mock_transport_factory(chunks=[b"late"], gate=gate)

        with async_request("http://mock/", transport_factory=factory, registry=registry) as unit:
            pending = asyncio.ensure_future(unit.aresponse())
            await asyncio.sleep(0.01)
            assert not pending.done()

            gate.set()
            response = await asyncio.wait_for(pending, timeout=5)

        assert response.body == b"late"

    @pytest.mark.asyncio
    async def test_aresponse_cancelled(self, mock_transport_factory, registry) -> None:
        """Test cancellation surfaces as CancelledError when awaited."""
        factory = mock_transport_factory(hang=True)

        with async_request("http://mock/", transport_factory=factory, registry=registry) as unit:
            unit.cancel()
            with pytest.raises(CancelledError):
                await asyncio.wait_for(unit.aresponse(), timeout=5)

    @pytest.mark.asyncio
    async def test_arequest_failure(self, mock_transport_factory, registry) -> None:
        """Test transfer failures propagate through arequest."""
        factory = mock_transport_factory(failure="Couldn't connect to server", fail_early=True)

        with pytest.raises(TransportFailureError):
            await arequest("http://mock/", transport_factory=factory, registry=registry)
