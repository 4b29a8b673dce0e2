"""
gRPC-web 帧编解码

帧格式（大端）：
    flag:u8 || length:u32 || payload:length bytes

flag 取值：
    0     -> 未压缩的数据帧
    1     -> 压缩数据帧（不支持，直接报错）
    其他  -> trailer 帧，payload 为换行分隔的 ASCII `key: value`

编解码只关心帧结构本身；消息体的 schema 由调用方提供（protobuf Message 类）。
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Type, TypeVar

from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.message import Message

from .exceptions import (
    CompressedFrameError,
    DecodeError,
    EmptyFrameError,
    EmptyPayloadError,
    ProtocolError,
    ShortFrameError,
)


HEADER_SIZE = 5
MAX_PAYLOAD_SIZE = 0xFFFFFFFF

FLAG_DATA = 0x00
FLAG_COMPRESSED = 0x01

TRAILER_STATUS = b"grpc-status:"
TRAILER_MESSAGE = b"grpc-message:"
TRAILER_DETAILS = b"grpc-status-details-bin:"

_HEADER = struct.Struct(">BI")

M = TypeVar("M", bound=Message)


@dataclass(frozen=True)
class WireFrame:
    """一个完整的数据帧"""
    flag: int
    length: int
    payload: bytes

    @property
    def is_trailer(self) -> bool:
        return self.flag not in (FLAG_DATA, FLAG_COMPRESSED)


@dataclass(frozen=True)
class TrailerSet:
    """trailer 帧中识别出的字段（每个响应临时构造，不持久化）"""
    status: Optional[str] = None
    message: Optional[str] = None
    details: Optional[bytes] = None


def encode_frame(payload: bytes) -> bytes:
    """构造未压缩数据帧：0x00 || u32be(len) || payload。"""
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise ValueError(f"payload too large for a single frame: {len(payload)} bytes")
    return _HEADER.pack(FLAG_DATA, len(payload)) + bytes(payload)


def encode_message(message: Message) -> bytes:
    """序列化 protobuf 消息并封帧。"""
    return encode_frame(message.SerializeToString())


def parse_header(header: bytes) -> tuple[int, int]:
    """解析 5 字节帧头，返回 (flag, length)。"""
    if len(header) < HEADER_SIZE:
        raise ShortFrameError(raw=header)
    return _HEADER.unpack_from(header)


def parse_trailers(raw: bytes) -> TrailerSet:
    """解析 trailer 帧（跳过 5 字节帧头），未识别的行直接忽略。"""
    status: Optional[str] = None
    message: Optional[str] = None
    details: Optional[bytes] = None
    for line in raw[HEADER_SIZE:].strip().split(b"\n"):
        line = line.strip()
        if line.startswith(TRAILER_STATUS):
            status = line[len(TRAILER_STATUS):].strip().decode("ascii", "replace")
        elif line.startswith(TRAILER_MESSAGE):
            message = line[len(TRAILER_MESSAGE):].strip().decode("ascii", "replace")
        elif line.startswith(TRAILER_DETAILS):
            details = line[len(TRAILER_DETAILS):].strip()
    return TrailerSet(status=status, message=message, details=details)


def trailer_error(raw: bytes) -> ProtocolError:
    trailers = parse_trailers(raw)
    return ProtocolError(
        status=trailers.status,
        status_message=trailers.message,
        status_details=trailers.details,
        raw=raw,
    )


def decode_frame(raw: bytes) -> WireFrame:
    """
    解码单个帧

    Returns:
        WireFrame: 数据帧（payload 为 raw[5:5+length]，之后的字节不消费）

    Raises:
        EmptyFrameError: raw 为空
        CompressedFrameError: flag == 1
        ProtocolError: 其他非零 flag（trailer 帧）
        ShortFrameError: 帧头不足 5 字节或 payload 不足 length
        EmptyPayloadError: length == 0
    """
    if not raw:
        raise EmptyFrameError(raw=raw)
    flag = raw[0]
    if flag == FLAG_COMPRESSED:
        raise CompressedFrameError(raw=raw)
    if flag != FLAG_DATA:
        raise trailer_error(raw)
    if len(raw) < HEADER_SIZE:
        raise ShortFrameError(raw=raw)
    _, length = _HEADER.unpack_from(raw)
    if length == 0:
        raise EmptyPayloadError(raw=raw)
    end = HEADER_SIZE + length
    if len(raw) < end:
        raise ShortFrameError(
            f"short frame: declared {length} payload bytes, got {len(raw) - HEADER_SIZE}",
            raw=raw,
            details={"declared": length},
        )
    return WireFrame(flag=flag, length=length, payload=bytes(raw[HEADER_SIZE:end]))


def parse_message(raw: bytes, message_type: Type[M]) -> M:
    """解码帧并反序列化为 message_type；反序列化失败抛出 DecodeError。"""
    frame = decode_frame(raw)
    try:
        return message_type.FromString(frame.payload)
    except ProtobufDecodeError as exc:
        raise DecodeError(
            f"failed to parse message: {exc}",
            raw=raw,
            message_type=message_type.DESCRIPTOR.full_name,
        ) from exc


__all__ = [
    "HEADER_SIZE",
    "FLAG_DATA",
    "FLAG_COMPRESSED",
    "WireFrame",
    "TrailerSet",
    "encode_frame",
    "encode_message",
    "parse_header",
    "parse_trailers",
    "trailer_error",
    "decode_frame",
    "parse_message",
]
