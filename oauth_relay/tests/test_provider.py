"""Tests for the Google OAuth client (HTTP calls patched)."""
import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauth_relay.config import GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL
from oauth_relay.errors import ExchangeFailed, RefreshFailed, UserInfoFailed
from oauth_relay.provider import GoogleOAuthClient


class MockResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


@pytest.fixture
def provider():
    return GoogleOAuthClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="https://relay.example/callback",
        scopes=["openid", "email"],
        timeout=5.0,
    )


def test_build_authorization_url_includes_required_params(provider):
    url = provider.build_authorization_url("mystate")
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://accounts.google.com/o/oauth2/v2/auth"
    params = parse_qs(parsed.query)
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["cid"]
    assert params["redirect_uri"] == ["https://relay.example/callback"]
    assert params["scope"] == ["openid email"]
    assert params["state"] == ["mystate"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]


def test_exchange_code_success(provider):
    body = {"access_token": "at", "refresh_token": "rt", "expires_in": 3599, "token_type": "Bearer"}
    before = int(time.time() * 1000)
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, body)) as post:
        tokens = provider.exchange_code("auth-code")
    assert tokens.access_token == "at"
    assert tokens.refresh_token == "rt"
    assert before + 3599 * 1000 - 1000 <= tokens.expiry_date <= int(time.time() * 1000) + 3599 * 1000 + 1000
    args, kwargs = post.call_args
    assert args[0] == GOOGLE_TOKEN_URL
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "code": "auth-code",
        "redirect_uri": "https://relay.example/callback",
        "client_id": "cid",
        "client_secret": "secret",
    }
    assert kwargs["timeout"] == 5.0


def test_exchange_code_without_refresh_token(provider):
    body = {"access_token": "at", "expires_in": 60}
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, body)):
        tokens = provider.exchange_code("auth-code")
    assert tokens.refresh_token is None


def test_exchange_code_rejected(provider):
    body = {"error": "invalid_grant", "error_description": "Bad Request"}
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(400, body)):
        with pytest.raises(ExchangeFailed) as exc_info:
            provider.exchange_code("used-code")
    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Failed to exchange authorization code"
    assert "invalid_grant" in exc_info.value.reason


def test_exchange_code_network_error(provider):
    with patch("oauth_relay.provider.httpx.post", side_effect=httpx.ConnectError("boom")):
        with pytest.raises(ExchangeFailed):
            provider.exchange_code("code")


def test_exchange_code_response_without_access_token(provider):
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, None)):
        with pytest.raises(ExchangeFailed):
            provider.exchange_code("code")


def test_fetch_user_info(provider):
    body = {"email": "ada@example.com", "name": "Ada", "picture": "https://img.example/a.png", "id": "1"}
    with patch("oauth_relay.provider.httpx.get", return_value=MockResponse(200, body)) as get:
        user = provider.fetch_user_info("at")
    assert user.email == "ada@example.com"
    assert user.name == "Ada"
    assert user.picture == "https://img.example/a.png"
    args, kwargs = get.call_args
    assert args[0] == GOOGLE_USERINFO_URL
    assert kwargs["headers"]["Authorization"] == "Bearer at"


def test_fetch_user_info_failure_is_an_exchange_failure(provider):
    body = {"error": {"code": 401, "status": "UNAUTHENTICATED"}}
    with patch("oauth_relay.provider.httpx.get", return_value=MockResponse(401, body)):
        with pytest.raises(ExchangeFailed) as exc_info:
            provider.fetch_user_info("bad")
    assert isinstance(exc_info.value, UserInfoFailed)
    assert "UNAUTHENTICATED" in exc_info.value.reason


def test_refresh_access_token(provider):
    body = {"access_token": "new-at", "expires_in": 3599, "scope": "openid email"}
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, body)) as post:
        tokens = provider.refresh_access_token("rt")
    assert tokens.access_token == "new-at"
    assert tokens.refresh_token == "rt"
    assert tokens.expiry_date is not None
    data = post.call_args.kwargs["data"]
    assert data["grant_type"] == "refresh_token"
    assert data["refresh_token"] == "rt"


def test_refresh_access_token_revoked(provider):
    body = {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(400, body)):
        with pytest.raises(RefreshFailed) as exc_info:
            provider.refresh_access_token("revoked")
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Failed to refresh token"


def test_refresh_access_token_network_error(provider):
    with patch("oauth_relay.provider.httpx.post", side_effect=httpx.ReadTimeout("slow")):
        with pytest.raises(RefreshFailed):
            provider.refresh_access_token("rt")


@pytest.mark.parametrize("expires_in", ["n/a", [3600], {"s": 1}])
def test_bad_expires_in_is_reported_as_provider_failure(provider, expires_in):
    body = {"access_token": "at", "expires_in": expires_in}
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, body)):
        with pytest.raises(ExchangeFailed) as exc_info:
            provider.exchange_code("code")
        assert "expires_in" in exc_info.value.reason
        with pytest.raises(RefreshFailed):
            provider.refresh_access_token("rt")


def test_non_string_access_token_is_rejected(provider):
    with patch("oauth_relay.provider.httpx.post", return_value=MockResponse(200, {"access_token": 42})):
        with pytest.raises(RefreshFailed):
            provider.refresh_access_token("rt")
