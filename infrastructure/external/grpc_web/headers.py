"""
gRPC-web 请求头

浏览器风格的基础请求头 + gRPC-web 必需头。Authorization 只在持有
access token 时附加，绝不发送空值。
"""
from __future__ import annotations

from typing import Dict, Optional

from core.config import DEFAULT_PLATFORM_VERSION

# 必需头（调用方已设置时不覆盖）
CONTENT_TYPE_GRPC_WEB = "application/grpc-web+proto"
X_USER_AGENT_GRPC_WEB = "grpc-web-javascript/0.1"

REQUIRED_GRPC_WEB_HEADERS: Dict[str, str] = {
    "Content-Type": CONTENT_TYPE_GRPC_WEB,
    "X-User-Agent": X_USER_AGENT_GRPC_WEB,
    "X-Grpc-Web": "1",
}

DEVICE_ID_HEADER = "fr24-device-id"
SENSITIVE_HEADERS = {"authorization"}


def default_json_headers(device_id: Optional[str] = None) -> Dict[str, str]:
    """JSON 接口使用的基础请求头"""
    headers = {
        "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:136.0) Gecko/20100101 Firefox/136.0",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Origin": "https://www.flightradar24.com",
        "Connection": "keep-alive",
        "Referer": "https://www.flightradar24.com/",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-site",
        "TE": "trailers",
    }
    if device_id:
        headers[DEVICE_ID_HEADER] = device_id
    return headers


def default_grpc_headers(
    device_id: Optional[str] = None,
    bearer: Optional[str] = None,
    platform_version: str = DEFAULT_PLATFORM_VERSION,
) -> Dict[str, str]:
    """gRPC-web 调用的基础请求头"""
    headers = default_json_headers(device_id)
    headers.update({
        "Accept": "*/*",
        "fr24-platform": f"web-{platform_version}",
        "x-envoy-retry-grpc-on": "unavailable",
        "DNT": "1",
    })
    headers.update(REQUIRED_GRPC_WEB_HEADERS)
    if bearer:
        headers["authorization"] = f"Bearer {bearer}"
    return headers


def redact_headers(headers) -> Dict[str, str]:
    """日志输出前去掉认证信息"""
    return {k: v for k, v in dict(headers).items() if k.lower() not in SENSITIVE_HEADERS}


__all__ = [
    "CONTENT_TYPE_GRPC_WEB",
    "X_USER_AGENT_GRPC_WEB",
    "REQUIRED_GRPC_WEB_HEADERS",
    "DEVICE_ID_HEADER",
    "default_json_headers",
    "default_grpc_headers",
    "redact_headers",
]
