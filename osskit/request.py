"""Logical requests and their preparation for the wire.

A ``Request`` is a mutable draft. ``prepare`` resolves its endpoint and
bucket-qualified path once, then restamps the Date header on every call.
``PreparedRequest.build`` freezes a prepared draft into what the transport sends.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import BinaryIO
from urllib.parse import quote, quote_plus, urlsplit

import httpx

from osskit.errors import InvalidEndpointError

type Params = dict[str, list[str]]
type Headers = dict[str, list[str]]
type Payload = bytes | BinaryIO

_PATH_SAFE = "/$&,:;=@"


def canonical_key(key: str) -> str:
    """MIME header canonical form: ``x-oss-acl`` becomes ``X-Oss-Acl``."""
    return "-".join(part.capitalize() for part in key.split("-"))


def gmt_now() -> str:
    return formatdate(usegmt=True)


def copy_multi(values: dict[str, list[str]] | None) -> dict[str, list[str]]:
    return {k: list(v) for k, v in (values or {}).items()}


def copy_headers(headers: Headers | None) -> Headers:
    """Copy ``headers`` with canonical keys, merging values of case variants."""
    result: Headers = {}
    for key, values in (headers or {}).items():
        result.setdefault(canonical_key(key), []).extend(values)
    return result


def set_header(headers: Headers, key: str, value: str) -> None:
    headers[canonical_key(key)] = [value]


def add_header(headers: Headers, key: str, value: str) -> None:
    headers.setdefault(canonical_key(key), []).append(value)


def get_header(headers: Headers, key: str) -> str:
    values = headers.get(canonical_key(key))
    return values[0] if values else ""


def encode_query(params: Params) -> str:
    """Encode params sorted by key, ``key=`` for empty values."""
    parts: list[str] = []
    for key in sorted(params):
        prefix = quote_plus(key)
        parts.extend(f"{prefix}={quote_plus(v)}" for v in params[key])
    return "&".join(parts)


def partially_escaped_path(path: str) -> str:
    """Escape ``path`` for the request line, keeping a bucket subresource ``?`` literal.

    Bucket configuration calls such as ``/bucket/?acl`` or ``/bucket/?location``
    need the character right after the bucket segment sent as ``?``, not ``%3F``.
    """
    segments = quote(path, safe=_PATH_SAFE).split("/")
    if len(segments) >= 3 and segments[2].startswith("%3F"):
        segments[2] = "?" + segments[2][3:]
    return "/".join(segments)


@dataclass(slots=True)
class Request:
    """A logical OSS request before it is put on the wire."""

    method: str = ""
    bucket: str = ""
    path: str = "/"
    params: Params = field(default_factory=dict)
    headers: Headers = field(default_factory=dict)
    payload: Payload | None = None
    base_url: str = ""
    prepared: bool = False

    def url(self) -> str:
        """Full URL with the partially escaped path and encoded query."""
        try:
            parts = urlsplit(self.base_url)
        except ValueError as e:
            raise InvalidEndpointError(f"bad OSS endpoint URL {self.base_url!r}: {e}") from e
        if not parts.scheme or not parts.netloc:
            raise InvalidEndpointError(f"bad OSS endpoint URL {self.base_url!r}")
        url = f"{parts.scheme}://{parts.netloc}{partially_escaped_path(self.path)}"
        query = encode_query(self.params)
        return f"{url}?{query}" if query else url


def prepare(
    req: Request,
    endpoint: str,
    sign: Callable[[Request], None],
    now: Callable[[], str] = gmt_now,
) -> Request:
    """Set ``req`` up for delivery and sign it.

    Headers and params are copied first so each attempt starts from clean maps.
    The base URL and bucket prefix are applied only on the first call.
    """
    req.params = copy_multi(req.params)
    req.headers = copy_headers(req.headers)

    if not req.prepared:
        req.prepared = True
        if not req.method:
            req.method = "GET"
        if not req.path.startswith("/"):
            req.path = "/" + req.path
        _set_base_url(req, endpoint)

    set_header(req.headers, "Date", now())
    sign(req)
    return req


def _set_base_url(req: Request, endpoint: str) -> None:
    req.base_url = endpoint
    # validates the endpoint before anything goes on the wire
    req.url()

    if req.bucket:
        if req.path != "/":
            req.path = f"/{req.bucket}{req.path}"
        else:
            req.path = f"/{req.bucket}"


@dataclass(frozen=True, slots=True)
class PreparedRequest:
    """Immutable wire form of a prepared request."""

    method: str
    url: str
    headers: tuple[tuple[str, str], ...]
    payload: Payload | None = None
    content_length: int | None = None

    @classmethod
    def build(cls, req: Request) -> PreparedRequest:
        if not req.prepared:
            raise ValueError("Request must be prepared before it is built")
        headers = copy_multi(req.headers)
        length = headers.pop("Content-Length", None)
        content_length = int(length[0]) if length else None
        return cls(
            method=req.method,
            url=req.url(),
            headers=tuple((k, v) for k, values in headers.items() for v in values),
            payload=req.payload,
            content_length=content_length,
        )

    def content(self) -> bytes | Iterable[bytes] | None:
        match self.payload:
            case None:
                return None
            case bytes() as data:
                return data
            case stream:
                return _iter_stream(stream)

    def to_httpx(self, client: httpx.Client) -> httpx.Request:
        headers = list(self.headers)
        if self.content_length is not None:
            headers.append(("Content-Length", str(self.content_length)))
        return client.build_request(
            self.method,
            httpx.URL(self.url),
            headers=headers,
            content=self.content(),
        )


def _iter_stream(stream: BinaryIO, chunk_size: int = 64 * 1024) -> Iterable[bytes]:
    while chunk := stream.read(chunk_size):
        yield chunk


__all__ = [
    "Headers",
    "Params",
    "PreparedRequest",
    "Request",
    "add_header",
    "canonical_key",
    "copy_headers",
    "copy_multi",
    "encode_query",
    "get_header",
    "partially_escaped_path",
    "prepare",
    "set_header",
]
