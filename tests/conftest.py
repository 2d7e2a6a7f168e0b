"""Shared pytest fixtures for the image credit service tests."""

import base64
from typing import Callable, List

import httpx
import pytest

from backend.extractor import ImageExtractor
from backend.ledger import InMemoryAccountStore
from backend.model import Account
from backend.orchestrator import GenerationOrchestrator
from backend.poller import PredictionPoller
from backend.upstream_client import UpstreamClient

ENDPOINT = "https://upstream.test/v1/predictions"
TOKEN = "test-token"

# PNG signature + IHDR start; not valid UTF-8 so it is never mistaken for JSON
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06"
PNG_BASE64 = base64.b64encode(PNG_BYTES).decode("ascii")

# Long enough to pass the bare-base64 length heuristic
LONG_BASE64 = base64.b64encode(PNG_BYTES * 8).decode("ascii")


class RecordingSleep:
    """Stand-in for asyncio.sleep that records intervals instead of waiting."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def store() -> InMemoryAccountStore:
    """Account store with one funded, one single-credit and one empty account."""
    return InMemoryAccountStore(
        {
            "user-1": Account(id="user-1", name="Alice", credit_balance=5),
            "last-credit": Account(id="last-credit", name="Bob", credit_balance=1),
            "broke": Account(id="broke", name="Carol", credit_balance=0),
        }
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_upstream() -> Callable[..., UpstreamClient]:
    """Build an UpstreamClient whose HTTP traffic is answered by `handler`."""

    def _make(handler, token: str = TOKEN) -> UpstreamClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return UpstreamClient(http, endpoint=ENDPOINT, token=token)

    return _make


@pytest.fixture
def make_orchestrator(store, sleep, make_upstream) -> Callable[..., GenerationOrchestrator]:
    """Build an orchestrator over the in-memory store and a mocked upstream."""

    def _make(handler, token: str = TOKEN, max_attempts: int = 30, **kwargs) -> GenerationOrchestrator:
        upstream = make_upstream(handler, token=token)
        return GenerationOrchestrator(
            store=store,
            upstream=upstream,
            poller=PredictionPoller(
                upstream.get_prediction, interval=2.0, max_attempts=max_attempts, sleep=sleep
            ),
            extractor=ImageExtractor(upstream.fetch_image, endpoint=upstream.endpoint),
            **kwargs,
        )

    return _make
