"""
gRPC-web 传输模块

提供帧编解码、请求构造、流式读取与一次性调用客户端
"""
from .client import GrpcWebClient, GrpcWebResponse
from .codec import (
    TrailerSet,
    WireFrame,
    decode_frame,
    encode_frame,
    encode_message,
    parse_message,
    parse_trailers,
)
from .exceptions import (
    CompressedFrameError,
    DecodeError,
    EmptyFrameError,
    EmptyPayloadError,
    FrameError,
    GrpcWebError,
    ProtocolError,
    ShortFrameError,
    TransportError,
)
from .request import build_request
from .stream import StreamHandle, open_stream

__all__ = [
    "GrpcWebClient",
    "GrpcWebResponse",
    "TrailerSet",
    "WireFrame",
    "decode_frame",
    "encode_frame",
    "encode_message",
    "parse_message",
    "parse_trailers",
    "CompressedFrameError",
    "DecodeError",
    "EmptyFrameError",
    "EmptyPayloadError",
    "FrameError",
    "GrpcWebError",
    "ProtocolError",
    "ShortFrameError",
    "TransportError",
    "build_request",
    "StreamHandle",
    "open_stream",
]
