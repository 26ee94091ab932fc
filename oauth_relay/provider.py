"""
Google OAuth 2.0 client: authorization URL, code exchange, userinfo, refresh.
Thin wrapper over Google's documented HTTP endpoints. No retries; every failure
is raised to the caller immediately.
"""
import time
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from oauth_relay.config import (
    CLIENT_ID,
    CLIENT_SECRET,
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    PROVIDER_TIMEOUT_SECONDS,
    REDIRECT_URI,
    SCOPES,
)
from oauth_relay.errors import ExchangeFailed, RefreshFailed, UserInfoFailed


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str | None
    # Epoch milliseconds, as Google's client libraries report it
    expiry_date: int | None


@dataclass
class UserInfo:
    email: str | None
    name: str | None = None
    picture: str | None = None


def _expiry_date(expires_in) -> int | None:
    if expires_in is None:
        return None
    return int((time.time() + int(expires_in)) * 1000)


def _token_set(data: dict, refresh_token: str | None = None) -> TokenSet:
    """Build a TokenSet from a 200 token response. ValueError if the body is unusable."""
    access_token = data.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise ValueError("token response without access_token")
    try:
        expiry_date = _expiry_date(data.get("expires_in"))
    except (TypeError, ValueError) as e:
        raise ValueError(f"bad expires_in: {data.get('expires_in')!r}") from e
    return TokenSet(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or refresh_token,
        expiry_date=expiry_date,
    )


def _json_body(r: httpx.Response) -> dict:
    try:
        body = r.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_reason(r: httpx.Response) -> str:
    """Short description of a failed Google response, for logs only."""
    body = _json_body(r)
    err = body.get("error")
    if isinstance(err, dict):
        err = err.get("status") or err.get("message")
    desc = body.get("error_description")
    if err and desc:
        return f"HTTP {r.status_code}: {err} ({desc})"
    if err:
        return f"HTTP {r.status_code}: {err}"
    return f"HTTP {r.status_code}"


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: str = CLIENT_ID,
        client_secret: str = CLIENT_SECRET,
        redirect_uri: str = REDIRECT_URI,
        scopes: list[str] | None = None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes if scopes is not None else SCOPES)
        self.timeout = timeout

    def build_authorization_url(self, state: str) -> str:
        """Consent URL; offline access + forced consent so Google always returns a refresh_token."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def _post_token(self, data: dict) -> httpx.Response:
        return httpx.post(
            GOOGLE_TOKEN_URL,
            data={**data, "client_id": self.client_id, "client_secret": self.client_secret},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

    def exchange_code(self, code: str) -> TokenSet:
        try:
            r = self._post_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                }
            )
        except httpx.HTTPError as e:
            raise ExchangeFailed(reason=f"token endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise ExchangeFailed(reason=_error_reason(r))
        try:
            return _token_set(_json_body(r))
        except ValueError as e:
            raise ExchangeFailed(reason=str(e)) from e

    def fetch_user_info(self, access_token: str) -> UserInfo:
        try:
            r = httpx.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise UserInfoFailed(reason=f"userinfo endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise UserInfoFailed(reason=_error_reason(r))
        data = _json_body(r)
        return UserInfo(email=data.get("email"), name=data.get("name"), picture=data.get("picture"))

    def refresh_access_token(self, refresh_token: str) -> TokenSet:
        """Mint a new access token. Google normally keeps the refresh token unchanged."""
        try:
            r = self._post_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        except httpx.HTTPError as e:
            raise RefreshFailed(reason=f"token endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise RefreshFailed(reason=_error_reason(r))
        try:
            return _token_set(_json_body(r), refresh_token=refresh_token)
        except ValueError as e:
            raise RefreshFailed(reason=str(e)) from e
