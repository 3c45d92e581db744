"""
Caller-facing request API for easy_http_core.

``request`` blocks until the response is available, ``async_request``
returns a running AsyncRequest to poll, and ``arequest`` awaits a
response from asyncio code without blocking the event loop.
"""

from typing import Any, Mapping, Optional, Union

from .async_request import AsyncRequest, TransportFactory
from .callbacks import CallbackRegistry
from .options import RequestOptions
from .primitives import Response

OptionsLike = Union[RequestOptions, Mapping[str, Any], None]


def request(
    url: str,
    options: OptionsLike = None,
    *,
    transport_factory: Optional[TransportFactory] = None,
    registry: Optional[CallbackRegistry] = None,
) -> Response:
    """
    Perform a request and wait for its response.

    Args:
        url: The URL to request
        options: Option mapping (see RequestOptions.parse)
        transport_factory: Callable returning a fresh Transport
        registry: Callback registry for ``on_data``/``on_progress``

    Returns:
        The response

    Raises:
        InvalidOptionsError: If the options are malformed
        TransportFailureError: If the transfer failed
        CallbackError: If a callback failed
    """
    with async_request(url, options, transport_factory=transport_factory, registry=registry) as unit:
        return unit.response()


def async_request(
    url: str,
    options: OptionsLike = None,
    *,
    transport_factory: Optional[TransportFactory] = None,
    registry: Optional[CallbackRegistry] = None,
) -> AsyncRequest:
    """
    Start a request on its own worker and return immediately.

    The caller owns the returned request and must ``dispose()`` it,
    or use it as a context manager.
    """
    return AsyncRequest.start(
        url,
        options,
        transport_factory=transport_factory,
        registry=registry,
    )


async def arequest(
    url: str,
    options: OptionsLike = None,
    *,
    transport_factory: Optional[TransportFactory] = None,
    registry: Optional[CallbackRegistry] = None,
) -> Response:
    """Perform a request from asyncio code and await its response."""
    unit = async_request(url, options, transport_factory=transport_factory, registry=registry)
    try:
        return await unit.aresponse()
    finally:
        unit.dispose()
