"""Error types and retry classification.

Every failure the client can surface maps to one ``ErrorKind``. Retry
eligibility is decided per kind, so call sites never inspect exception
types themselves.
"""

from __future__ import annotations

import http.client
import socket
from dataclasses import dataclass
from enum import StrEnum

import httpx

# ─── Errors ──────────────────────────────────────────────────────────


class OSSKitError(Exception):
    """Base class for errors raised by osskit."""


@dataclass(slots=True, eq=False)
class OSSError(OSSKitError):
    """Non-success response reported by the service."""

    status_code: int
    code: str = ""
    message: str = ""
    bucket_name: str = ""
    request_id: str = ""
    host_id: str = ""

    def __str__(self) -> str:
        if self.code:
            return f"OSS {self.status_code} {self.code}: {self.message}"
        return f"OSS {self.status_code}: {self.message}"


class RequestFailed(OSSKitError):
    """The HTTP exchange itself failed before a response was received."""

    def __init__(self, method: str, url: str, cause: BaseException) -> None:
        super().__init__(f"{method} {url}: {cause}")
        self.method = method
        self.url = url
        self.cause = cause


class InvalidEndpointError(OSSKitError):
    """The configured endpoint cannot be used as a base URL."""


class DecodeError(OSSKitError):
    """A successful response carried a body that could not be decoded."""


# ─── Classification ──────────────────────────────────────────────────


IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE", "HEAD"})
RETRYABLE_CODES = frozenset({"InternalError", "NoSuchUpload", "NoSuchBucket"})


class ErrorKind(StrEnum):
    UNEXPECTED_EOF = "unexpected_eof"
    DNS = "dns"
    NETWORK_READ_WRITE = "network_read_write"
    REQUEST = "request"
    SERVICE = "service"
    CONFIG = "config"
    DECODE = "decode"
    OTHER = "other"


def _caused_by_dns(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify(exc: BaseException) -> ErrorKind:
    """Map an exception to the kind that drives retry decisions."""
    match exc:
        case OSSError():
            return ErrorKind.SERVICE
        case RequestFailed():
            return ErrorKind.REQUEST
        case InvalidEndpointError():
            return ErrorKind.CONFIG
        case DecodeError():
            return ErrorKind.DECODE
        case EOFError() | httpx.RemoteProtocolError() | http.client.IncompleteRead():
            return ErrorKind.UNEXPECTED_EOF
        case socket.gaierror():
            return ErrorKind.DNS
        case httpx.ConnectError() if _caused_by_dns(exc):
            return ErrorKind.DNS
        case httpx.ReadError() | httpx.WriteError() | httpx.ReadTimeout() | httpx.WriteTimeout():
            return ErrorKind.NETWORK_READ_WRITE
        case _:
            return ErrorKind.OTHER


def should_retry(exc: BaseException | None) -> bool:
    """Whether a failed attempt may be repeated.

    POST requests are never retried: the service does not guarantee that
    they are idempotent.
    """
    if exc is None:
        return False
    match classify(exc):
        case ErrorKind.UNEXPECTED_EOF | ErrorKind.DNS | ErrorKind.NETWORK_READ_WRITE:
            return True
        case ErrorKind.REQUEST:
            assert isinstance(exc, RequestFailed)
            return exc.method.upper() in IDEMPOTENT_METHODS and should_retry(exc.cause)
        case ErrorKind.SERVICE:
            assert isinstance(exc, OSSError)
            # TODO: NoSuchBucket/NoSuchUpload are usually permanent; confirm with the
            # service team before dropping them from RETRYABLE_CODES.
            return exc.code in RETRYABLE_CODES
        case _:
            return False


def has_code(exc: BaseException, code: str) -> bool:
    return isinstance(exc, OSSError) and exc.code == code


__all__ = [
    "DecodeError",
    "ErrorKind",
    "InvalidEndpointError",
    "OSSError",
    "OSSKitError",
    "RequestFailed",
    "classify",
    "has_code",
    "should_retry",
]
