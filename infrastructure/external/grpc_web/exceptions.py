"""
Exceptions for the gRPC-web transport mapped to unified BusinessException variants.

- FrameError: 本地结构性错误（空帧、短帧、压缩帧、空消息体）
- ProtocolError: 服务端通过 trailer 帧返回的状态
- DecodeError: 帧结构正确但消息体无法按预期 schema 反序列化
- TransportError: HTTP 层连接/超时/状态码错误
"""
from __future__ import annotations

from typing import Optional

import grpc

from domain.common.exceptions import BusinessException
from shared.codes import GrpcWebCode


class GrpcWebError(BusinessException):
    """gRPC-web 错误基类，保留原始字节便于排查。"""

    def __init__(
        self,
        message: str,
        *,
        code: int = GrpcWebCode.FRAME_ERROR,
        error_type: str = "GrpcWebError",
        raw: bytes = b"",
        details: Optional[dict] = None,
    ) -> None:
        self.raw = bytes(raw)
        full_details = {"raw_len": len(self.raw)}
        if details:
            full_details.update(details)
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)


class FrameError(GrpcWebError):
    """帧结构错误基类"""

    default_message = "malformed frame"
    default_code = GrpcWebCode.FRAME_ERROR

    def __init__(self, message: Optional[str] = None, *, raw: bytes = b"", details: Optional[dict] = None) -> None:
        super().__init__(
            message or self.default_message,
            code=self.default_code,
            error_type=type(self).__name__,
            raw=raw,
            details=details,
        )


class EmptyFrameError(FrameError):
    default_message = "empty DATA frame"
    default_code = GrpcWebCode.EMPTY_FRAME


class ShortFrameError(FrameError):
    default_message = "short frame"
    default_code = GrpcWebCode.SHORT_FRAME


class CompressedFrameError(FrameError):
    default_message = "message is compressed, not implemented"
    default_code = GrpcWebCode.COMPRESSED_UNSUPPORTED


class EmptyPayloadError(FrameError):
    default_message = "empty message payload"
    default_code = GrpcWebCode.EMPTY_MESSAGE_PAYLOAD


class ProtocolError(GrpcWebError):
    """服务端在 trailer 帧中返回的错误状态，原样透传。"""

    def __init__(
        self,
        *,
        status: Optional[str] = None,
        status_message: Optional[str] = None,
        status_details: Optional[bytes] = None,
        raw: bytes = b"",
    ) -> None:
        self.status = status
        self.status_message = status_message
        self.status_details = status_details
        if status or status_message:
            message = f"gRPC errored: status={status or ''} message={status_message or ''}"
        else:
            message = "gRPC errored"
        super().__init__(
            message,
            code=GrpcWebCode.PROTOCOL_ERROR,
            error_type="ProtocolError",
            raw=raw,
            details={"grpc_status": status, "grpc_message": status_message},
        )

    @property
    def is_ok(self) -> bool:
        """trailer 携带 grpc-status: 0（正常结束）"""
        return self.status == "0"

    @property
    def grpc_code(self) -> Optional[grpc.StatusCode]:
        """将文本状态码映射为 grpc.StatusCode，无法识别时返回 None。"""
        try:
            value = int(self.status or "")
        except ValueError:
            return None
        for sc in grpc.StatusCode:
            if sc.value[0] == value:
                return sc
        return None


class DecodeError(GrpcWebError):
    """消息体反序列化失败（schema 不匹配）"""

    def __init__(self, message: str, *, raw: bytes = b"", message_type: Optional[str] = None) -> None:
        super().__init__(
            message,
            code=GrpcWebCode.DECODE_ERROR,
            error_type="DecodeError",
            raw=raw,
            details={"message_type": message_type} if message_type else None,
        )


class TransportError(GrpcWebError):
    """HTTP 层错误（连接失败、超时、非 2xx 状态码）"""

    def __init__(self, message: str, *, status_code: Optional[int] = None, raw: bytes = b"") -> None:
        self.status_code = status_code
        super().__init__(
            message,
            code=GrpcWebCode.HTTP_STATUS_ERROR if status_code else GrpcWebCode.TRANSPORT_ERROR,
            error_type="TransportError",
            raw=raw,
            details={"status_code": status_code} if status_code else None,
        )

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


__all__ = [
    "GrpcWebError",
    "FrameError",
    "EmptyFrameError",
    "ShortFrameError",
    "CompressedFrameError",
    "EmptyPayloadError",
    "ProtocolError",
    "DecodeError",
    "TransportError",
]
