"""gRPC-web 请求构造：固定端点 + 方法名，body 为已封帧的字节。"""
from __future__ import annotations

from typing import Mapping, Optional

import httpx

from core.config import DEFAULT_FEED_BASE_URL
from .headers import REQUIRED_GRPC_WEB_HEADERS


def build_url(method: str, base_url: str = DEFAULT_FEED_BASE_URL) -> str:
    """构建完整URL"""
    return f"{base_url.rstrip('/')}/{method.lstrip('/')}"


def build_request(
    method: str,
    encoded_frame: bytes,
    base_headers: Optional[Mapping[str, str]] = None,
    *,
    base_url: str = DEFAULT_FEED_BASE_URL,
) -> httpx.Request:
    """
    构造 POST 请求

    Args:
        method: 远端方法名，如 "LiveFeed"
        encoded_frame: encode_frame() 的输出，原样作为 body
        base_headers: 调用方请求头，同名头优先于默认值
        base_url: 端点前缀

    Returns:
        httpx.Request
    """
    headers = httpx.Headers(base_headers or {})
    for name, value in REQUIRED_GRPC_WEB_HEADERS.items():
        if not headers.get(name):
            headers[name] = value
    return httpx.Request("POST", build_url(method, base_url), content=encoded_frame, headers=headers)


__all__ = ["build_url", "build_request"]
