"""
Shared error codes used across layers (Domain/Infrastructure/Application).

This package exposes GrpcWebCode at `shared.codes` so every exception in the
client resolves to one stable numeric code.
"""
from enum import IntEnum


class GrpcWebCode(IntEnum):
    """gRPC-web 客户端错误码（单一来源）"""

    # Success
    SUCCESS = 0

    # Framing errors (1xxxx)
    FRAME_ERROR = 10000
    EMPTY_FRAME = 10001
    SHORT_FRAME = 10002
    COMPRESSED_UNSUPPORTED = 10003
    EMPTY_MESSAGE_PAYLOAD = 10004

    # Remote status carried in trailers (2xxxx)
    PROTOCOL_ERROR = 20000

    # Payload does not match the expected schema (3xxxx)
    DECODE_ERROR = 30000

    # HTTP layer (4xxxx)
    TRANSPORT_ERROR = 40000
    HTTP_STATUS_ERROR = 40001
    AUTH_ERROR = 40002


__all__ = ["GrpcWebCode"]
