"""
凭证读取与登录

来源优先级：
    1. $XDG_CONFIG_HOME/fr24/fr24.conf 的 [global] 段（覆盖环境变量）
    2. 环境变量 fr24_username / fr24_password / fr24_subscription_key / fr24_token

解析结果：
    - 有用户名+密码：登录，取 userData.subscriptionKey / userData.accessToken
    - 否则有 subscription_key：直接使用（token 可选）
    - 否则匿名
"""
from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.config import DEFAULT_LOGIN_URL, ClientConfig, Settings
from core.logging_config import get_logger
from shared.codes import GrpcWebCode
from .exceptions import TransportError
from .headers import default_json_headers


logger = get_logger(__name__)


class Credentials(BaseSettings):
    """环境变量中的凭证（键名不区分大小写，前缀 fr24_）"""

    username: Optional[str] = None
    password: Optional[str] = None
    subscription_key: Optional[str] = None
    token: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="fr24_",
        case_sensitive=False,
        extra="ignore",
    )


class Authentication(BaseModel):
    """登录接口响应"""

    message: Optional[str] = None
    user: Dict[str, Any] = Field(default_factory=dict)
    userData: Dict[str, Any] = Field(default_factory=dict)

    @property
    def subscription_key(self) -> Optional[str]:
        value = self.userData.get("subscriptionKey")
        return value if isinstance(value, str) and value else None

    @property
    def access_token(self) -> Optional[str]:
        value = self.userData.get("accessToken")
        return value if isinstance(value, str) and value else None


def config_file_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "fr24" / "fr24.conf"


def read_credentials(path: Optional[Path] = None) -> Credentials:
    """读取环境变量凭证，并用配置文件 [global] 段覆盖。"""
    creds = Credentials()
    path = path or config_file_path()
    if not path.is_file():
        return creds

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        logger.warning("credentials_config_invalid", path=str(path), error=str(exc))
        return creds
    if not parser.has_section("global"):
        return creds

    section = parser["global"]
    overrides = {
        key: section[key].strip()
        for key in ("username", "password", "subscription_key", "token")
        if section.get(key, "").strip()
    }
    if overrides:
        creds = creds.model_copy(update=overrides)
    return creds


async def login(
    client: httpx.AsyncClient,
    username: str,
    password: str,
    *,
    login_url: str = DEFAULT_LOGIN_URL,
) -> Authentication:
    """用户名密码登录"""
    headers = default_json_headers()
    headers["Content-Type"] = "application/x-www-form-urlencoded"
    try:
        response = await client.post(
            login_url,
            data={"email": username, "password": password},
            headers=headers,
        )
    except httpx.HTTPError as exc:
        raise TransportError(f"login failed: {exc}") from exc

    if response.is_error:
        error = TransportError(f"login failed: status {response.status_code}", status_code=response.status_code)
        error.code = GrpcWebCode.AUTH_ERROR
        raise error
    return Authentication.model_validate(response.json())


async def resolve_credentials(
    client: httpx.AsyncClient,
    creds: Optional[Credentials] = None,
    *,
    login_url: str = DEFAULT_LOGIN_URL,
) -> Tuple[Optional[str], Optional[str]]:
    """返回 (subscription_key, access_token)"""
    creds = creds or read_credentials()
    if creds.username and creds.password:
        auth = await login(client, creds.username, creds.password, login_url=login_url)
        logger.info("credentials_login_ok", has_token=auth.access_token is not None)
        return auth.subscription_key, auth.access_token
    if creds.subscription_key:
        return creds.subscription_key, creds.token or None
    return None, None


async def load_client_config(
    settings: Settings,
    client: httpx.AsyncClient,
    creds: Optional[Credentials] = None,
) -> ClientConfig:
    """启动时构造一次不可变 ClientConfig（含解析后的凭证）"""
    subscription_key, access_token = await resolve_credentials(
        client, creds, login_url=settings.feed.login_url
    )
    config = ClientConfig.from_settings(
        settings, access_token=access_token, subscription_key=subscription_key
    )
    logger.info("client_config_loaded", auth_mode=config.auth_mode)
    return config


__all__ = [
    "Credentials",
    "Authentication",
    "config_file_path",
    "read_credentials",
    "login",
    "resolve_credentials",
    "load_client_config",
]
