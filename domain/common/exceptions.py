"""领域层异常基类，供基础设施与应用层共同继承。

所有客户端异常都携带统一的错误码（shared.codes.GrpcWebCode），
上层可以按 code 或按异常类型区分处理。
"""
from __future__ import annotations

from typing import Optional


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """导出为可序列化字典（日志/调试用）"""
        return {
            "code": int(self.code),
            "message": self.message,
            "error_type": self.error_type,
            "details": self.details,
        }


__all__ = ["BusinessException"]
