"""
Response projection: raw gRPC-web response bytes -> typed protobuf message.

The codec only validates framing; deserialization uses the message class the
caller supplies, so one projection serves every method regardless of schema.
"""
from __future__ import annotations

from typing import Generic, Type, TypeVar

from google.protobuf.message import Message

from core.logging_config import get_logger
from infrastructure.external.grpc_web.codec import parse_message
from infrastructure.external.grpc_web.exceptions import EmptyFrameError, EmptyPayloadError


logger = get_logger(__name__)

M = TypeVar("M", bound=Message)


class ResponseProjection(Generic[M]):
    """把单个帧投影为 message_type 实例。

    empty_ok=True 时，空帧 / 空消息体被视为合法的空结果（返回 message_type()），
    其余调用类型仍把它们当作错误。
    """

    def __init__(self, message_type: Type[M], *, empty_ok: bool = False) -> None:
        self.message_type = message_type
        self.empty_ok = empty_ok

    def project(self, raw: bytes) -> M:
        try:
            return parse_message(raw, self.message_type)
        except (EmptyPayloadError, EmptyFrameError) as exc:
            if not self.empty_ok:
                raise
            logger.debug(
                "grpc_web_empty_result",
                message_type=self.message_type.DESCRIPTOR.full_name,
                reason=exc.error_type,
            )
            return self.message_type()

    def __repr__(self) -> str:
        return f"ResponseProjection({self.message_type.DESCRIPTOR.full_name}, empty_ok={self.empty_ok})"


__all__ = ["ResponseProjection"]
