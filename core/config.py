"""
配置文件 - 项目配置管理

Settings 只在启动时读取一次（环境变量 / .env）；真正传给客户端的是
不可变的 ClientConfig，构造之后不再修改。
"""
import secrets
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FEED_BASE_URL = "https://data-feed.flightradar24.com/fr24.feed.api.v1.Feed"
DEFAULT_PLATFORM_VERSION = "25.197.0927"
DEFAULT_LOGIN_URL = "https://www.flightradar24.com/user/login"


def new_device_id() -> str:
    """生成匿名访问使用的随机设备标识（web-<token_urlsafe(32)>）。"""
    return "web-" + secrets.token_urlsafe(32).rstrip("=")


class FeedSettings(BaseModel):
    base_url: str = DEFAULT_FEED_BASE_URL
    # Unary calls only; streams never carry an overall timeout
    timeout: float = Field(default=20.0, gt=0)
    stream_queue_size: int = Field(default=8, ge=1)
    platform_version: str = DEFAULT_PLATFORM_VERSION
    device_id: Optional[str] = None
    login_url: str = DEFAULT_LOGIN_URL


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="fr24-grpc-web")
    VERSION: str = Field(default="0.1.0")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: Optional[str] = Field(default=None, description="覆盖默认日志级别，如 DEBUG/INFO/WARNING")

    # 分组配置：feed 采用嵌套模型，环境变量形如 FEED__TIMEOUT=5
    feed: FeedSettings = Field(default_factory=FeedSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        if v is None:
            return v
        s = str(v).strip().upper()
        return s or None


class ClientConfig(BaseModel):
    """客户端不可变配置（设备标识、凭证、超时等），启动时构造一次。"""

    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_FEED_BASE_URL
    timeout: float = Field(default=20.0, gt=0)
    stream_queue_size: int = Field(default=8, ge=1)
    platform_version: str = DEFAULT_PLATFORM_VERSION
    device_id: str = Field(default_factory=new_device_id)
    access_token: Optional[str] = None
    # 只参与 auth_mode 判定，gRPC-web 请求不携带它
    # （上游只在 JSON 接口上以 token 查询参数发送，本客户端没有 JSON 接口）
    subscription_key: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def auth_mode(self) -> str:
        """bearer / subscription-key / anonymous"""
        if self.access_token:
            return "bearer"
        if self.subscription_key:
            return "subscription-key"
        return "anonymous"

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        access_token: Optional[str] = None,
        subscription_key: Optional[str] = None,
    ) -> "ClientConfig":
        feed = settings.feed
        return cls(
            base_url=feed.base_url,
            timeout=feed.timeout,
            stream_queue_size=feed.stream_queue_size,
            platform_version=feed.platform_version,
            device_id=feed.device_id or new_device_id(),
            access_token=access_token or None,
            subscription_key=subscription_key or None,
        )


settings = Settings()
