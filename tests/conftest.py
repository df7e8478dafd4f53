from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from osskit import AttemptStrategy, Client, ClientConfig, Credentials, Region

from tests.helpers import FIXED_DATE, FakeClock, Handler, Recorder


@pytest.fixture
def credentials() -> Credentials:
    return Credentials("access-id", "access-secret")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(credentials: Credentials, clock: FakeClock):
    clients: list[Client] = []

    def factory(handler: Handler, now: Callable[[], str] | None = None, **config) -> tuple[Client, Recorder]:
        recorder = Recorder(handler)
        config.setdefault("region", Region.HANGZHOU)
        config.setdefault(
            "attempts",
            AttemptStrategy(min=5, total=5.0, delay=0.2, clock=clock, sleep=clock.sleep),
        )
        client = Client(
            credentials,
            ClientConfig(**config),
            transport=httpx.MockTransport(recorder),
            now=now or (lambda: FIXED_DATE),
            clock=clock,
        )
        clients.append(client)
        return client, recorder

    yield factory
    for c in clients:
        c.close()
