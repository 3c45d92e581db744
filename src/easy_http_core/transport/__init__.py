"""
Transport components for easy_http_core.

A transport performs the actual network transfer on behalf of a
request worker and streams results back through sinks.
"""

from .base import (
    ByteSink,
    HeaderSink,
    ProgressSink,
    Transport,
    TransportResult,
)
from .h11_transport import H11Transport
from .mock import MockTransport
from .utils import (
    configure_socket,
    create_ssl_context,
    format_host_header,
    parse_url,
)

__all__ = [
    "ByteSink",
    "HeaderSink",
    "ProgressSink",
    "Transport",
    "TransportResult",
    "H11Transport",
    "MockTransport",
    "configure_socket",
    "create_ssl_context",
    "format_host_header",
    "parse_url",
]
