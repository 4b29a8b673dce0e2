import json

import httpx
import pytest

from core.config import Settings
from infrastructure.external.grpc_web.credentials import (
    Credentials,
    config_file_path,
    load_client_config,
    login,
    read_credentials,
    resolve_credentials,
)
from infrastructure.external.grpc_web.exceptions import TransportError
from shared.codes import GrpcWebCode


LOGIN_URL = "https://auth.test/user/login"

AUTH_BODY = {
    "success": True,
    "message": "ok",
    "user": {"id": 1},
    "userData": {"subscriptionKey": "sub-123", "accessToken": "tok-456"},
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in ("FR24_USERNAME", "FR24_PASSWORD", "FR24_SUBSCRIPTION_KEY", "FR24_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return tmp_path


def _write_conf(root, text: str):
    path = root / "fr24" / "fr24.conf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _login_client(seen=None, status_code=200, body=AUTH_BODY):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, content=json.dumps(body).encode())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_config_path_follows_xdg(isolated_env):
    assert config_file_path() == isolated_env / "fr24" / "fr24.conf"


def test_env_credentials(monkeypatch):
    monkeypatch.setenv("FR24_SUBSCRIPTION_KEY", "env-key")
    monkeypatch.setenv("fr24_token", "env-token")
    creds = read_credentials()
    assert creds.subscription_key == "env-key"
    assert creds.token == "env-token"
    assert creds.username is None


def test_config_file_overrides_env(monkeypatch, isolated_env):
    monkeypatch.setenv("FR24_USERNAME", "env-user")
    monkeypatch.setenv("FR24_SUBSCRIPTION_KEY", "env-key")
    _write_conf(isolated_env, "[global]\nusername = file-user\npassword = secret\nsubscription_key =\n")

    creds = read_credentials()

    assert creds.username == "file-user"
    assert creds.password == "secret"
    # blank values in the file do not clear the environment
    assert creds.subscription_key == "env-key"


def test_config_file_without_global_section(isolated_env):
    _write_conf(isolated_env, "[other]\nusername = x\n")
    assert read_credentials() == Credentials()


@pytest.mark.asyncio
async def test_login_posts_form():
    seen = []
    async with _login_client(seen) as client:
        auth = await login(client, "me@example.com", "pw", login_url=LOGIN_URL)

    assert auth.subscription_key == "sub-123"
    assert auth.access_token == "tok-456"
    request = seen[0]
    assert str(request.url) == LOGIN_URL
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.content == b"email=me%40example.com&password=pw"


@pytest.mark.asyncio
async def test_login_rejected():
    async with _login_client(status_code=401, body={"message": "bad"}) as client:
        with pytest.raises(TransportError) as ei:
            await login(client, "me", "pw", login_url=LOGIN_URL)
    assert ei.value.code == GrpcWebCode.AUTH_ERROR
    assert ei.value.status_code == 401


@pytest.mark.asyncio
async def test_resolve_prefers_login():
    creds = Credentials(username="me", password="pw", subscription_key="ignored")
    async with _login_client() as client:
        assert await resolve_credentials(client, creds, login_url=LOGIN_URL) == ("sub-123", "tok-456")


@pytest.mark.asyncio
async def test_resolve_subscription_key_without_login():
    seen = []
    creds = Credentials(subscription_key="key", token="")
    async with _login_client(seen) as client:
        assert await resolve_credentials(client, creds) == ("key", None)
    assert seen == []


@pytest.mark.asyncio
async def test_resolve_anonymous():
    async with _login_client() as client:
        assert await resolve_credentials(client, Credentials()) == (None, None)


@pytest.mark.asyncio
async def test_load_client_config_uses_login_url(monkeypatch):
    monkeypatch.setenv("FEED__LOGIN_URL", LOGIN_URL)
    monkeypatch.setenv("FEED__DEVICE_ID", "web-fixed")
    seen = []
    async with _login_client(seen) as client:
        config = await load_client_config(
            Settings(_env_file=None), client, Credentials(username="me", password="pw")
        )

    assert str(seen[0].url) == LOGIN_URL
    assert config.auth_mode == "bearer"
    assert config.access_token == "tok-456"
    assert config.subscription_key == "sub-123"
    assert config.device_id == "web-fixed"
