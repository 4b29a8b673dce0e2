"""
Feed gateway port (contracts-first).

The application layer only depends on this contract; the gRPC-web client in
infrastructure implements it and is injected from the composition root.
"""
from __future__ import annotations

from typing import AsyncIterator, Mapping, Optional, Protocol


class UnaryResponse(Protocol):
    raw_content: bytes


class FrameStream(Protocol):
    """Cancellable, ordered, non-restartable sequence of raw frames."""

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    def cancel(self) -> None: ...

    async def aclose(self) -> None: ...


class FeedGateway(Protocol):
    async def unary(
        self,
        method: str,
        frame: bytes,
        headers: Optional[Mapping[str, str]] = None,
    ) -> UnaryResponse: ...

    async def stream(
        self,
        method: str,
        frame: bytes,
        headers: Optional[Mapping[str, str]] = None,
        *,
        deadline: Optional[float] = None,
    ) -> FrameStream: ...


__all__ = ["UnaryResponse", "FrameStream", "FeedGateway"]
