"""
Error taxonomy for the relay. Each error maps to one HTTP status and a fixed public
message; `reason` carries internal detail for the log only.
Rendered as {"error": message} by the handlers registered in main.
"""
from fastapi import HTTPException, status


class RelayError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None, *, reason: str | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.message)
        self.reason = reason

    def __str__(self) -> str:
        return self.reason or str(self.detail)


class InvalidRequest(RelayError):
    """Missing or malformed query/body parameters."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Missing required parameters"


class StateNotFound(RelayError):
    """State never issued, already consumed, or expired. The message must not say which."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid or expired state. Please try again."


class ProviderError(RelayError):
    """Google redirected back with ?error=... (e.g. access_denied)."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, error_code: str):
        super().__init__(f"Google OAuth error: {error_code}")
        self.error_code = error_code


class ExchangeFailed(RelayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Failed to exchange authorization code"


class UserInfoFailed(ExchangeFailed):
    """Tokens were issued but the userinfo lookup failed; reported as a failed exchange."""


class RefreshFailed(RelayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Failed to refresh token"
