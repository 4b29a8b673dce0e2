"""
Application service for feed RPC calls.

This class depends only on the FeedGateway port. The gRPC-web client is
provided by infrastructure and injected from the composition root.

Request messages are protobuf messages (or bytes already serialized by the
caller); response types are protobuf message classes supplied per call.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Dict, Mapping, Optional, Type, TypeVar, Union

from google.protobuf.message import Message

from application.ports.feed_gateway import FeedGateway
from application.services.projection import ResponseProjection
from core.logging_config import get_logger
from infrastructure.external.grpc_web.codec import encode_frame
from infrastructure.external.grpc_web.exceptions import DecodeError, ProtocolError


logger = get_logger(__name__)

M = TypeVar("M", bound=Message)


@dataclass(frozen=True)
class FeedMethod:
    """远端方法描述"""
    name: str
    streaming: bool = False
    # 零结果时服务端可能返回空帧，需要当作空结果而不是错误
    empty_ok: bool = False


LIVE_FEED = FeedMethod("LiveFeed")
PLAYBACK = FeedMethod("Playback")
NEAREST_FLIGHTS = FeedMethod("NearestFlights", empty_ok=True)
LIVE_FLIGHTS_STATUS = FeedMethod("LiveFlightsStatus")
TOP_FLIGHTS = FeedMethod("TopFlights")
LIVE_TRAIL = FeedMethod("LiveTrail")
HISTORIC_TRAIL = FeedMethod("HistoricTrail")
FLIGHT_DETAILS = FeedMethod("FlightDetails")
PLAYBACK_FLIGHT = FeedMethod("PlaybackFlight")
FOLLOW_FLIGHT = FeedMethod("FollowFlight", streaming=True)

FEED_METHODS: Dict[str, FeedMethod] = {
    m.name: m
    for m in (
        LIVE_FEED,
        PLAYBACK,
        NEAREST_FLIGHTS,
        LIVE_FLIGHTS_STATUS,
        TOP_FLIGHTS,
        LIVE_TRAIL,
        HISTORIC_TRAIL,
        FLIGHT_DETAILS,
        PLAYBACK_FLIGHT,
        FOLLOW_FLIGHT,
    )
}


def resolve_method(method: Union[str, FeedMethod]) -> FeedMethod:
    """方法名 -> FeedMethod；未收录的方法按普通一次性调用处理。"""
    if isinstance(method, FeedMethod):
        return method
    return FEED_METHODS.get(method) or FeedMethod(method)


def encode_request(request: Union[Message, bytes]) -> bytes:
    if isinstance(request, Message):
        return encode_frame(request.SerializeToString())
    return encode_frame(bytes(request))


class FeedService:
    def __init__(self, gateway: FeedGateway) -> None:
        self.gateway = gateway

    async def call(
        self,
        method: Union[str, FeedMethod],
        request: Union[Message, bytes],
        response_type: Type[M],
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> M:
        """一次性调用：发送、读取完整响应、解码一次并投影。"""
        feed_method = resolve_method(method)
        if feed_method.streaming:
            raise ValueError(f"{feed_method.name} is a streaming method, use follow()")

        frame = encode_request(request)
        logger.info("feed_call_request", method=feed_method.name, body_len=len(frame))
        response = await self.gateway.unary(feed_method.name, frame, headers)
        message = ResponseProjection(response_type, empty_ok=feed_method.empty_ok).project(response.raw_content)
        logger.info("feed_call_response", method=feed_method.name, body_len=len(response.raw_content))
        return message

    async def nearest_flights(self, request: Union[Message, bytes], response_type: Type[M]) -> M:
        return await self.call(NEAREST_FLIGHTS, request, response_type)

    async def follow(
        self,
        method: Union[str, FeedMethod],
        request: Union[Message, bytes],
        response_type: Type[M],
        *,
        once: bool = False,
        deadline: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> AsyncIterator[M]:
        """
        流式订阅，按到达顺序逐条产出投影后的消息

        - trailer 携带 grpc-status: 0 时正常结束，其他状态抛出 ProtocolError
        - 帧结构错误直接抛出并结束订阅
        - 无法反序列化的消息体记录告警后跳过
        - once=True 时收到第一条消息后结束
        任何退出路径都会关闭底层连接。消费方提前 break 时生成器不会立即结束，
        需要用 contextlib.aclosing 包裹才能马上关闭连接：

            async with aclosing(service.follow_flight(req, FollowFlightResponse)) as updates:
                async for update in updates:
                    ...
        """
        feed_method = resolve_method(method)
        frame = encode_request(request)
        handle = await self.gateway.stream(feed_method.name, frame, headers, deadline=deadline)
        projection = ResponseProjection(response_type, empty_ok=feed_method.empty_ok)
        delivered = 0
        try:
            async for raw in handle:
                try:
                    message = projection.project(raw)
                except ProtocolError as exc:
                    if exc.is_ok:
                        logger.info("feed_stream_finished", method=feed_method.name, delivered=delivered)
                        return
                    raise
                except DecodeError as exc:
                    logger.warning("feed_stream_decode_skipped", method=feed_method.name, error=exc.to_dict())
                    continue
                delivered += 1
                yield message
                if once:
                    return
        finally:
            await handle.aclose()

    def follow_flight(
        self,
        request: Union[Message, bytes],
        response_type: Type[M],
        *,
        once: bool = False,
        deadline: Optional[float] = None,
    ) -> AsyncIterator[M]:
        return self.follow(FOLLOW_FLIGHT, request, response_type, once=once, deadline=deadline)


__all__ = [
    "FeedMethod",
    "FEED_METHODS",
    "LIVE_FEED",
    "PLAYBACK",
    "NEAREST_FLIGHTS",
    "LIVE_FLIGHTS_STATUS",
    "TOP_FLIGHTS",
    "LIVE_TRAIL",
    "HISTORIC_TRAIL",
    "FLIGHT_DETAILS",
    "PLAYBACK_FLIGHT",
    "FOLLOW_FLIGHT",
    "resolve_method",
    "encode_request",
    "FeedService",
]
