"""Blocking HTTP transport for prepared OSS requests.

One attempt per call: send, enforce the read deadline, then either decode
the body or turn the response into an ``OSSError``. Retrying is the
caller's business.
"""

from __future__ import annotations

import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from typing import Any

import httpx
from loguru import logger

from osskit.config import ClientConfig
from osskit.errors import DecodeError, OSSError, RequestFailed
from osskit.models import ErrorDocument
from osskit.request import PreparedRequest

SUCCESS_CODES = frozenset({200, 204, 206})

# Response extension holding the absolute read deadline of a streamed body
READ_DEADLINE = "osskit.read_deadline"

type Decoder[T] = Callable[[bytes], T]


def _iter_before(
    resp: httpx.Response,
    deadline: float | None,
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[bytes]:
    """Yield body chunks, failing once the absolute deadline has passed."""
    for chunk in resp.iter_bytes():
        if deadline is not None and clock() > deadline:
            raise httpx.ReadTimeout("read deadline exceeded", request=resp.request)
        yield chunk


def _read_before(
    resp: httpx.Response,
    deadline: float | None,
    clock: Callable[[], float] = time.monotonic,
) -> bytes:
    return b"".join(_iter_before(resp, deadline, clock))


class Transport:
    """Runs prepared requests over a shared ``httpx.Client``."""

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._http = httpx.Client(
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.read_timeout,
                pool=config.connect_timeout,
            ),
            transport=transport,
            trust_env=True,
        )
        self._log = logger.bind(component="transport")

    def close(self) -> None:
        self._http.close()

    def _deadline(self) -> float | None:
        if self._config.read_timeout is None:
            return None
        return self._clock() + self._config.read_timeout

    def send(self, prepared: PreparedRequest) -> tuple[httpx.Response, float | None]:
        """Send headers and payload, returning the open response and its read deadline.

        Transport failures are wrapped in ``RequestFailed`` with the request method.
        """
        request = prepared.to_httpx(self._http)
        deadline = self._deadline()
        if self._config.debug:
            self._log.debug(
                "Running OSS request {method} {url} headers={headers}",
                method=prepared.method, url=prepared.url, headers=dict(prepared.headers),
            )
        try:
            resp = self._http.send(request, stream=True)
        except httpx.TransportError as e:
            raise RequestFailed(prepared.method, prepared.url, e) from e
        return resp, deadline

    def run[T](
        self,
        prepared: PreparedRequest,
        decode: Decoder[T] | None = None,
        *,
        stream: bool = False,
    ) -> tuple[httpx.Response, T | None]:
        """Execute one attempt.

        With ``stream=True`` a successful response is returned unread and the
        caller owns closing it. Read it through ``iter_body`` to keep the
        read deadline. Otherwise the body is read, optionally decoded,
        and the response is closed before returning.
        """
        resp, deadline = self.send(prepared)
        keep_open = False
        try:
            if resp.status_code not in SUCCESS_CODES:
                raise self.build_error(resp, deadline)

            if stream:
                keep_open = True
                resp.extensions[READ_DEADLINE] = deadline
                return resp, None

            body = _read_before(resp, deadline, self._clock)
            if self._config.debug:
                self._log.debug(
                    "Response {status} {headers} {body}",
                    status=resp.status_code, headers=dict(resp.headers), body=body[:2048],
                )
            if decode is None:
                return resp, None

            try:
                result = decode(body)
            except ET.ParseError as e:
                raise DecodeError(f"cannot decode {prepared.method} {prepared.url} response: {e}") from e
            if self._config.debug:
                self._log.debug("decoded xml into {result!r}", result=result)
            return resp, result
        finally:
            if not keep_open:
                resp.close()

    def iter_body(self, resp: httpx.Response) -> Iterator[bytes]:
        """Iterate a streamed body under the read deadline fixed when it was sent."""
        return _iter_before(resp, resp.extensions.get(READ_DEADLINE), self._clock)

    def build_error(self, resp: httpx.Response, deadline: float | None) -> OSSError:
        body = _read_before(resp, deadline, self._clock)
        if self._config.debug:
            self._log.debug(
                "got error (status code {status}) data: {body}",
                status=resp.status_code, body=body[:2048],
            )

        doc = ErrorDocument()
        if body:
            try:
                doc = ErrorDocument.from_xml(body)
            except ET.ParseError:
                self._log.debug("error body is not XML, using status line")

        error = OSSError(
            status_code=resp.status_code,
            code=doc.code,
            message=doc.message or f"{resp.status_code} {resp.reason_phrase}",
            bucket_name=doc.bucket_name,
            request_id=doc.request_id,
            host_id=doc.host_id,
        )
        self._log.debug("err: {error!r}", error=error)
        return error

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


__all__ = ["READ_DEADLINE", "SUCCESS_CODES", "Decoder", "Transport"]
