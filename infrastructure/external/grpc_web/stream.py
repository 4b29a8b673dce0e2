"""
gRPC-web 流式读取

一个 StreamHandle 对应一个打开的订阅：
    - 后台任务独占响应体的读取端，按帧边界（5 字节帧头 + length 字节）读取
    - 每个完整帧放入有界队列（默认 8），消费者通过 `async for` 取出
    - 队列满时读取任务阻塞（背压）；此时取消会丢弃该帧并立即退出
    - cancel() 幂等：关闭连接、停止后台任务、关闭投递通道

Example:
    handle = await open_stream(http_client, request)
    async with handle:
        async for frame in handle:
            msg = parse_message(frame, LiveFeedResponse)
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

import httpx

from core.logging_config import get_logger
from .codec import HEADER_SIZE, parse_header
from .exceptions import TransportError


logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 8

# 投递通道关闭标记
_CLOSED = object()


class FrameReader:
    """从任意分块的字节流中按声明长度读取完整帧。"""

    def __init__(self, chunks: AsyncIterator[bytes]) -> None:
        self._chunks = chunks.__aiter__()
        self._buffer = bytearray()
        self._eof = False

    @property
    def pending(self) -> int:
        """已缓冲但尚未组成完整帧的字节数"""
        return len(self._buffer)

    async def read_exactly(self, n: int) -> Optional[bytes]:
        """读取恰好 n 个字节；流在凑满之前结束时返回 None。"""
        while len(self._buffer) < n and not self._eof:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._eof = True
                break
            self._buffer.extend(chunk)
        if len(self._buffer) < n:
            return None
        out = bytes(self._buffer[:n])
        del self._buffer[:n]
        return out

    async def read_frame(self) -> Optional[bytes]:
        """读取下一帧（帧头 + payload 原样拼接）；流结束返回 None。"""
        header = await self.read_exactly(HEADER_SIZE)
        if header is None:
            return None
        _, length = parse_header(header)
        payload = await self.read_exactly(length)
        if payload is None:
            return None
        return header + payload


class StreamHandle:
    """
    一个打开的订阅

    Attributes:
        method: 远端方法名
        frames_received: 已从连接读到的完整帧数
        deadline_exceeded: 是否因 deadline 到期而结束
    """

    def __init__(
        self,
        response: httpx.Response,
        *,
        method: str = "",
        queue_size: int = DEFAULT_QUEUE_SIZE,
        deadline: Optional[float] = None,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.method = method
        self.frames_received = 0
        self.deadline_exceeded = False

        self._response = response
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._cancelled = False
        self._exhausted = False
        self._error: Optional[TransportError] = None
        self._closer: Optional[asyncio.Task] = None

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._read_loop(), name=f"grpc-web-stream:{method}")
        self._task.add_done_callback(self._on_task_done)
        self._deadline_handle: Optional[asyncio.TimerHandle] = None
        if deadline is not None:
            self._deadline_handle = loop.call_later(deadline, self._on_deadline)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        """连接是否已关闭"""
        return self._response.is_closed

    @property
    def done(self) -> bool:
        """后台读取任务是否已结束"""
        return self._task.done()

    @property
    def error(self) -> Optional[TransportError]:
        return self._error

    def cancel(self) -> None:
        """取消订阅（幂等）：停止读取任务、关闭连接、关闭投递通道。"""
        if self._cancelled:
            return
        self._cancelled = True
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
        self._task.cancel()
        # 丢弃尚未消费的帧，让消费者立即看到通道关闭
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(_CLOSED)
        logger.debug("grpc_web_stream_cancel", method=self.method)

    async def aclose(self) -> None:
        """取消并等待后台任务与连接关闭完成。"""
        self.cancel()
        await asyncio.wait({self._task})
        if self._closer is not None:
            await asyncio.wait({self._closer})
        await self._response.aclose()

    def __aiter__(self) -> "StreamHandle":
        return self

    async def __anext__(self) -> bytes:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            if self._error is not None and not self._cancelled:
                raise self._error
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "StreamHandle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _read_loop(self) -> None:
        reader = FrameReader(self._response.aiter_bytes())
        reason = "eof"
        try:
            while True:
                frame = await reader.read_frame()
                if frame is None:
                    break
                self.frames_received += 1
                await self._queue.put(frame)
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        except httpx.HTTPError as exc:
            reason = "transport_error"
            self._error = TransportError(f"stream read failed: {exc}")
            self._error.__cause__ = exc
        except Exception as exc:
            reason = "read_error"
            logger.exception("grpc_web_stream_read_failed", method=self.method)
            self._error = TransportError(f"stream read failed: {exc!r}")
            self._error.__cause__ = exc
        finally:
            logger.info(
                "grpc_web_stream_closed",
                method=self.method,
                reason=reason,
                frames=self.frames_received,
                truncated_bytes=reader.pending,
            )
            # 关闭过程中被 cancel() 打断时，连接仍需关完；aclose() 会等待它
            self._closer = asyncio.ensure_future(self._response.aclose())
            await asyncio.shield(self._closer)
        # 自然结束（EOF/读取错误）时关闭通道；取消路径由 cancel() 负责
        await self._queue.put(_CLOSED)

    def _on_task_done(self, task: asyncio.Task) -> None:
        # 任务在首次调度前被取消时 finally 不会执行，这里补上连接关闭
        if self._closer is None and not self._response.is_closed:
            self._closer = asyncio.get_running_loop().create_task(self._response.aclose())

    def _on_deadline(self) -> None:
        self.deadline_exceeded = True
        logger.info("grpc_web_stream_deadline", method=self.method, frames=self.frames_received)
        self.cancel()


async def open_stream(
    client: httpx.AsyncClient,
    request: httpx.Request,
    *,
    method: str = "",
    queue_size: int = DEFAULT_QUEUE_SIZE,
    deadline: Optional[float] = None,
) -> StreamHandle:
    """
    发送请求并返回 StreamHandle

    流式请求不设总超时（timeout=None），只有取消、deadline、EOF 或错误会结束订阅。

    Raises:
        TransportError: 连接失败或非 2xx 状态码
        ValueError: queue_size < 1（此时不发送请求）
    """
    if queue_size < 1:
        raise ValueError("queue_size must be >= 1")
    request.extensions["timeout"] = httpx.Timeout(None).as_dict()
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        raise TransportError(f"stream request failed: {exc}") from exc

    if response.is_error:
        await response.aclose()
        raise TransportError(
            f"stream request failed with status {response.status_code}",
            status_code=response.status_code,
        )

    logger.info("grpc_web_stream_opened", method=method, url=str(request.url), queue_size=queue_size)
    try:
        return StreamHandle(response, method=method, queue_size=queue_size, deadline=deadline)
    except BaseException:
        await response.aclose()
        raise


__all__ = ["DEFAULT_QUEUE_SIZE", "FrameReader", "StreamHandle", "open_stream"]
