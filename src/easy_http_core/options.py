"""
Request options for easy_http_core.

Options are parsed once from a plain mapping and are immutable for the
lifetime of a request. Callables given as ``on_data``/``on_progress``
are registered with a callback registry during parsing; the options own
those registrations and release them exactly once in ``close()``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO, List, Mapping, Optional, Tuple, Union

from .callbacks import CallbackHandle, CallbackRegistry, default_registry
from .exceptions import InvalidHeadersError, InvalidOptionsError, OutOfMemoryError

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "GET"
DEFAULT_TIMEOUT = 0
DEFAULT_FOLLOW_REDIRECTS = False
UNLIMITED_REDIRECTS = -1


@dataclass(frozen=True)
class RequestOptions:
    """
    Immutable configuration bundle for one request.

    ``headers`` holds the extra request headers serialized as
    ``"Key: Value"`` lines, in the order they were given.
    """

    method: str = DEFAULT_METHOD
    body: Optional[bytes] = None
    timeout: Union[int, float] = DEFAULT_TIMEOUT
    follow_redirects: bool = DEFAULT_FOLLOW_REDIRECTS
    max_redirects: int = UNLIMITED_REDIRECTS
    output_file: Optional[BinaryIO] = None
    headers: Tuple[str, ...] = ()
    on_data: Optional[CallbackHandle] = None
    on_progress: Optional[CallbackHandle] = None
    registry: CallbackRegistry = field(default=default_registry, repr=False, compare=False)
    owned_handles: Tuple[CallbackHandle, ...] = field(default=(), repr=False, compare=False)
    _closed: bool = field(default=False, init=False, repr=False, compare=False)

    @classmethod
    def parse(
        cls,
        raw: Optional[Mapping[str, Any]] = None,
        registry: Optional[CallbackRegistry] = None,
    ) -> "RequestOptions":
        """
        Build options from a configuration mapping.

        Args:
            raw: Mapping with any of the keys ``method``, ``body``,
                ``timeout``, ``follow_redirects``, ``max_redirects``,
                ``output_file``, ``headers``, ``on_data``, ``on_progress``.
                Unknown keys are ignored. ``None`` yields the defaults.
            registry: Registry for callback handles (defaults to the
                process-wide registry)

        Returns:
            New RequestOptions instance

        Raises:
            InvalidHeadersError: If ``headers`` is present but not a mapping
            InvalidOptionsError: If any other value is malformed
            OutOfMemoryError: If the header list could not be built
        """
        if registry is None:
            registry = default_registry

        if raw is None:
            raw = {}
        elif not isinstance(raw, Mapping):
            raise InvalidOptionsError(
                f"options must be a mapping, got {type(raw).__name__}"
            )

        method = _parse_method(raw.get("method"))
        body = _parse_body(raw.get("body"))
        timeout = _parse_timeout(raw.get("timeout"))
        follow_redirects = bool(raw.get("follow_redirects", DEFAULT_FOLLOW_REDIRECTS))
        max_redirects = _parse_max_redirects(raw.get("max_redirects"))
        output_file = _parse_output_file(raw.get("output_file"))
        headers = _serialize_headers(raw.get("headers"))

        owned: List[CallbackHandle] = []
        try:
            on_data = _parse_callback("on_data", raw.get("on_data"), registry, owned)
            on_progress = _parse_callback("on_progress", raw.get("on_progress"), registry, owned)
        except InvalidOptionsError:
            for handle in owned:
                registry.release(handle)
            raise

        options = cls(
            method=method,
            body=body,
            timeout=timeout,
            follow_redirects=follow_redirects,
            max_redirects=max_redirects,
            output_file=output_file,
            headers=headers,
            on_data=on_data,
            on_progress=on_progress,
            registry=registry,
            owned_handles=tuple(owned),
        )
        logger.debug(
            f"Parsed options: method={method} timeout={timeout} headers={len(headers)}"
        )
        return options

    def close(self) -> None:
        """Release the callback registrations these options own."""
        if self._closed:
            return
        object.__setattr__(self, "_closed", True)

        for handle in self.owned_handles:
            self.registry.release(handle)

    @property
    def closed(self) -> bool:
        """Whether ``close()`` has run."""
        return self._closed

    def header_pairs(self) -> List[Tuple[str, str]]:
        """Split the serialized header lines back into (name, value) pairs."""
        pairs = []
        for line in self.headers:
            name, _, value = line.partition(":")
            pairs.append((name, value.lstrip(" ")))
        return pairs

    def __enter__(self) -> "RequestOptions":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _parse_method(value: Any) -> str:
    if value is None:
        return DEFAULT_METHOD
    if not isinstance(value, str) or not value:
        raise InvalidOptionsError("method must be a non-empty string")
    return value


def _parse_body(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise InvalidOptionsError(f"body must be str or bytes, got {type(value).__name__}")


def _parse_timeout(value: Any) -> Union[int, float]:
    if value is None:
        return DEFAULT_TIMEOUT
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidOptionsError("timeout must be a number of seconds")
    if value < 0:
        raise InvalidOptionsError("timeout must not be negative")
    return value


def _parse_max_redirects(value: Any) -> int:
    if value is None:
        return UNLIMITED_REDIRECTS
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidOptionsError("max_redirects must be an integer")
    if value < UNLIMITED_REDIRECTS:
        raise InvalidOptionsError("max_redirects must be -1 (unlimited) or greater")
    return value


def _parse_output_file(value: Any) -> Optional[BinaryIO]:
    if value is None:
        return None
    if not callable(getattr(value, "write", None)):
        raise InvalidOptionsError("output_file must be a writable binary file object")
    return value


def _serialize_headers(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, Mapping):
        raise InvalidHeadersError(f"must be a mapping, got {type(value).__name__}")

    try:
        lines = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidHeadersError(f"names must be strings, got {key!r}")
            if isinstance(item, bool) or not isinstance(item, (str, int, float)):
                raise InvalidHeadersError(f"value for {key!r} must be a string or number")
            lines.append(f"{key}: {item}")
        return tuple(lines)
    except MemoryError as e:
        raise OutOfMemoryError("failed to serialize request headers", cause=e) from e


def _parse_callback(
    name: str,
    value: Any,
    registry: CallbackRegistry,
    owned: List[CallbackHandle],
) -> Optional[CallbackHandle]:
    if value is None:
        return None
    if callable(value):
        handle = registry.register(value)
        owned.append(handle)
        return handle
    if isinstance(value, int) and not isinstance(value, bool):
        if value not in registry:
            raise InvalidOptionsError(f"{name} is not a registered callback handle")
        return CallbackHandle(value)
    raise InvalidOptionsError(f"{name} must be a callable or a callback handle")
