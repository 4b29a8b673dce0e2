"""
gRPC-web 客户端

提供通用的调用功能，包括：
- 请求封帧与必需请求头
- 一次性调用（短超时）
- 流式订阅（无总超时，返回 StreamHandle）
- 请求/响应日志（不记录认证头）

不做自动重试：重试策略属于调用方。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional

import httpx

from core.config import ClientConfig
from core.logging_config import get_logger
from .exceptions import TransportError
from .headers import default_grpc_headers, redact_headers
from .request import build_request
from .stream import StreamHandle, open_stream


logger = get_logger(__name__)


@dataclass
class GrpcWebResponse:
    """一次性调用的响应封装"""
    method: str
    status_code: int
    headers: Dict[str, str]
    raw_content: bytes
    elapsed_ms: float

    @property
    def is_success(self) -> bool:
        """判断请求是否成功"""
        return 200 <= self.status_code < 300


class GrpcWebClient:
    """
    gRPC-web 客户端

    配置（设备标识、凭证、超时）在构造时确定，之后只读，可被多个并发调用共享。
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        debug: bool = False,
    ) -> None:
        """
        初始化客户端

        Args:
            config: 不可变客户端配置，缺省时使用默认值
            http_client: 外部提供的 httpx.AsyncClient（测试注入 MockTransport 时使用）
            debug: 是否记录请求/响应调试日志
        """
        self.config = config or ClientConfig()
        self.debug = debug
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        """关闭HTTP客户端"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GrpcWebClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def default_headers(self) -> Dict[str, str]:
        return default_grpc_headers(
            device_id=self.config.device_id,
            bearer=self.config.access_token,
            platform_version=self.config.platform_version,
        )

    def build(self, method: str, frame: bytes, headers: Optional[Mapping[str, str]] = None) -> httpx.Request:
        """合并默认头与调用方请求头（调用方优先）后构造请求"""
        merged = httpx.Headers(self.default_headers())
        if headers:
            merged.update(headers)
        return build_request(method, frame, merged, base_url=self.config.base_url)

    async def unary(
        self,
        method: str,
        frame: bytes,
        headers: Optional[Mapping[str, str]] = None,
    ) -> GrpcWebResponse:
        """
        发送一次性请求并读取完整响应体

        Raises:
            TransportError: 连接/超时错误或非 2xx 状态码
        """
        request = self.build(method, frame, headers)
        request.extensions["timeout"] = httpx.Timeout(self.config.timeout).as_dict()
        self._log_request(method, request)

        start_time = datetime.now()
        try:
            response = await self.client.send(request)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timeout after {self.config.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Network error: {exc}") from exc
        elapsed = (datetime.now() - start_time).total_seconds() * 1000

        result = GrpcWebResponse(
            method=method,
            status_code=response.status_code,
            headers=dict(response.headers),
            raw_content=response.content,
            elapsed_ms=elapsed,
        )
        self._log_response(result)

        if not result.is_success:
            raise TransportError(
                f"gRPC-web request {method} failed with status {result.status_code}",
                status_code=result.status_code,
                raw=result.raw_content,
            )
        return result

    async def stream(
        self,
        method: str,
        frame: bytes,
        headers: Optional[Mapping[str, str]] = None,
        *,
        deadline: Optional[float] = None,
    ) -> StreamHandle:
        """打开流式订阅，返回 StreamHandle（调用方负责 aclose/cancel）"""
        request = self.build(method, frame, headers)
        self._log_request(method, request)
        return await open_stream(
            self.client,
            request,
            method=method,
            queue_size=self.config.stream_queue_size,
            deadline=deadline,
        )

    def _log_request(self, method: str, request: httpx.Request) -> None:
        """记录请求日志"""
        if self.debug:
            logger.debug(
                "grpc_web_request",
                method=method,
                url=str(request.url),
                body_len=len(request.content),
                headers=redact_headers(request.headers),
            )

    def _log_response(self, response: GrpcWebResponse) -> None:
        """记录响应日志"""
        if self.debug:
            logger.debug(
                "grpc_web_response",
                method=response.method,
                status_code=response.status_code,
                elapsed_ms=round(response.elapsed_ms, 2),
                body_len=len(response.raw_content),
            )


__all__ = ["GrpcWebClient", "GrpcWebResponse"]
