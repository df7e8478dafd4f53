from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

import httpx

type Handler = Callable[[httpx.Request], httpx.Response]

FIXED_DATE = "Mon, 02 Jan 2006 15:04:05 GMT"


@dataclass
class FakeClock:
    """Monotonic clock that only moves when slept on or advanced."""

    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Recorder:
    """Routes requests to a handler and keeps every request it saw."""

    handler: Handler
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class TrackedStream(httpx.SyncByteStream):
    """Response body that records whether it was closed.

    With a clock, each chunk after the first arrives ``step`` seconds later.
    """

    def __init__(self, chunks: list[bytes], clock: FakeClock | None = None, step: float = 0.0) -> None:
        self._chunks = chunks
        self._clock = clock
        self._step = step
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            yield chunk
            if self._clock is not None:
                self._clock.advance(self._step)

    def close(self) -> None:
        self.closed = True


def xml_response(status: int, body: str) -> httpx.Response:
    return httpx.Response(status, content=body.encode(), headers={"Content-Type": "application/xml"})


def error_body(code: str, message: str = "boom") -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Error><Code>{code}</Code><Message>{message}</Message>"
        "<RequestId>req-1</RequestId><HostId>host-1</HostId><BucketName>photos</BucketName></Error>"
    )
