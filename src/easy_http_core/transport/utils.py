"""
Network utilities for easy_http_core transports.

Helpers for URL parsing, socket tuning and TLS context setup.
"""

import socket
import ssl
from typing import List, Optional, Tuple
from urllib.parse import urlparse

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


def parse_url(url: str) -> Tuple[str, str, int, str]:
    """
    Parse URL into components.

    Args:
        url: URL string to parse

    Returns:
        Tuple of (scheme, host, port, target) where target is the
        path plus query string

    Raises:
        ValueError: If the URL is malformed or uses an unsupported scheme
    """
    parsed = urlparse(url)

    scheme = (parsed.scheme or "http").lower()
    if scheme not in ("http", "https"):
        raise ValueError(f"Unsupported URL scheme: {scheme}")

    host = parsed.hostname or ""
    if not host:
        raise ValueError("No hostname found in URL")

    port = parsed.port
    if port is None:
        port = 443 if scheme == "https" else 80

    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query

    return scheme, host, port, target


def format_host_header(host: str, port: int, scheme: str) -> str:
    """
    Format host header for HTTP requests.

    Args:
        host: Hostname
        port: Port number
        scheme: URL scheme

    Returns:
        Formatted host header string
    """
    if ":" in host:
        host = f"[{host}]"
    if (scheme == "https" and port == 443) or (scheme == "http" and port == 80):
        return host
    return f"{host}:{port}"


def configure_socket(sock: socket.socket) -> socket.socket:
    """
    Apply latency and keep-alive options to a connected socket.

    Args:
        sock: Socket object

    Returns:
        The same socket
    """
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    # Platform-specific keep-alive settings
    if hasattr(socket, "TCP_KEEPIDLE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60)
    if hasattr(socket, "TCP_KEEPINTVL"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10)
    if hasattr(socket, "TCP_KEEPCNT"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 6)

    return sock


def create_ssl_context(
    alpn_protocols: Optional[List[str]] = None,
    verify: bool = True,
) -> ssl.SSLContext:
    """
    Create an SSL context for client connections.

    Args:
        alpn_protocols: Optional list of ALPN protocols to negotiate
        verify: Whether to verify the server certificate and hostname

    Returns:
        Configured SSL context
    """
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)

    context.options |= ssl.OP_NO_COMPRESSION
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    return context


def remaining_time(deadline: Optional[float], now: float) -> Optional[float]:
    """Seconds left until ``deadline`` (``None`` when there is no deadline)."""
    if deadline is None:
        return None
    return deadline - now
