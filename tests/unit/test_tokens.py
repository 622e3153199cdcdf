import time

import jwt
import pytest

from fedlink.auth import StaticTokenProvider, token_expiry
from fedlink.errors import AuthenticationError


SECRET = "fedlink-test-signing-secret-0123456789abcdef"


def _jwt(exp):
    return jwt.encode({"sub": "admin", "exp": int(exp)}, SECRET, algorithm="HS256")


@pytest.mark.asyncio
async def test_valid_jwt_is_returned():
    token = _jwt(time.time() + 3600)
    tokens = StaticTokenProvider({"microsoft": token})
    assert await tokens.token("microsoft") == token


@pytest.mark.asyncio
async def test_expired_jwt_raises_authentication_error():
    tokens = StaticTokenProvider({"microsoft": _jwt(time.time() - 10)})
    with pytest.raises(AuthenticationError) as exc_info:
        await tokens.token("microsoft")
    assert exc_info.value.provider == "microsoft"
    assert exc_info.value.code == "AUTH_EXPIRED"


@pytest.mark.asyncio
async def test_missing_token_raises_and_opaque_tokens_pass_through():
    tokens = StaticTokenProvider({"google": "ya29.opaque-token"})
    assert await tokens.token("google") == "ya29.opaque-token"
    with pytest.raises(AuthenticationError):
        await tokens.token("microsoft")


def test_token_expiry_reads_exp_claim():
    exp = int(time.time()) + 60
    assert token_expiry(_jwt(exp)) == float(exp)
    assert token_expiry("not-a-jwt") is None


@pytest.mark.asyncio
async def test_from_env(monkeypatch):
    monkeypatch.setenv("FEDLINK_GOOGLE_TOKEN", "g-token")
    monkeypatch.delenv("FEDLINK_MICROSOFT_TOKEN", raising=False)
    tokens = StaticTokenProvider.from_env()
    assert await tokens.token("google") == "g-token"
    with pytest.raises(AuthenticationError):
        await tokens.token("microsoft")
