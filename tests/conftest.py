"""Pytest bootstrap configuration.

Shared fixtures for the gRPC-web tests: frame builders, a chunked response
stream that records closure, and an httpx client wired to MockTransport.
"""
import asyncio
import struct
from typing import AsyncIterator, Callable, Iterable, List, Optional

import httpx
import pytest

from core.config import ClientConfig
from infrastructure.external.grpc_web.client import GrpcWebClient


def data_frame(payload: bytes) -> bytes:
    return struct.pack(">BI", 0, len(payload)) + payload


def trailer_frame(text: str, flag: int = 0x80) -> bytes:
    body = text.encode("ascii")
    return struct.pack(">BI", flag, len(body)) + body


def split_bytes(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in fixed chunks; optionally never ends."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        forever: Optional[Callable[[int], bytes]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        close_delay: float = 0.0,
    ) -> None:
        self.chunks = list(chunks)
        self.forever = forever
        self.error = error
        self.delay = delay
        self.close_delay = close_delay
        self.closed = False
        self.yielded = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.yielded += 1
            yield chunk
        if self.error is not None:
            raise self.error
        if self.forever is not None:
            n = 0
            while True:
                await asyncio.sleep(0)
                self.yielded += 1
                yield self.forever(n)
                n += 1

    async def aclose(self) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True


class Recorder:
    """Captures requests seen by the mock transport."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        base_url="https://feed.test/fr24.feed.api.v1.Feed",
        device_id="web-test-device",
        access_token=None,
    )


@pytest.fixture
def make_client(client_config):
    """Build a GrpcWebClient whose transport answers with `handler`."""

    def _make(handler, recorder: Optional[Recorder] = None, config: Optional[ClientConfig] = None) -> GrpcWebClient:
        def _handle(request: httpx.Request):
            if recorder is not None:
                recorder.requests.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_handle))
        return GrpcWebClient(config or client_config, http_client=http_client)

    return _make
