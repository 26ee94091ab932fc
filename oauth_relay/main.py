"""
OAuth relay: Google authorization-code flow behind a reverse proxy.
GET /health, GET /auth, GET CALLBACK_PATH, POST /refresh (all under ROUTE_PREFIX).
Port 3847 by default.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from oauth_relay.config import (
    CALLBACK_PATH,
    DEFAULT_RETURN_URL,
    FORWARDED_ALLOW_IPS,
    LISTEN_HOST,
    LISTEN_PORT,
    LOG_LEVEL,
    ROUTE_PREFIX,
)
from oauth_relay.errors import (
    ExchangeFailed,
    InvalidRequest,
    ProviderError,
    RefreshFailed,
    RelayError,
    StateNotFound,
)
from oauth_relay.provider import GoogleOAuthClient
from oauth_relay.security_headers import install_security_headers
from oauth_relay.state_store import PendingStateCache, StateSweeper

logger = logging.getLogger(__name__)


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_client_ip(request: Request) -> str | None:
    """Client address as uvicorn resolved it (X-Forwarded-For only from trusted proxies)."""
    if request.client is None:
        return None
    return request.client.host


def get_state_cache(request: Request) -> PendingStateCache:
    return request.app.state.state_cache


def get_provider(request: Request) -> GoogleOAuthClient:
    return request.app.state.provider


def success_redirect_url(return_url: str, email: str | None) -> str:
    """Append auth=success&email=... to the caller's return URL."""
    separator = "&" if "?" in return_url else "?"
    return f"{return_url}{separator}auth=success&email={quote(email or '', safe='')}"


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


router = APIRouter()


@router.get("/health")
def health():
    """Liveness probe."""
    now = datetime.now(timezone.utc)
    return {"status": "ok", "timestamp": now.isoformat(timespec="milliseconds").replace("+00:00", "Z")}


@router.get("/auth")
def begin_auth(
    request: Request,
    return_url: str | None = None,
    cache: PendingStateCache = Depends(get_state_cache),
    provider: GoogleOAuthClient = Depends(get_provider),
):
    """Issue a CSRF state for this attempt and redirect to Google's consent screen."""
    state = cache.begin(return_url or DEFAULT_RETURN_URL, get_client_ip(request))
    return RedirectResponse(url=provider.build_authorization_url(state), status_code=302)


def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    response_format: str | None = Query(None, alias="format"),
    cache: PendingStateCache = Depends(get_state_cache),
    provider: GoogleOAuthClient = Depends(get_provider),
):
    """
    Google redirects here with ?code=...&state=... (or ?error=...).
    The state is consumed before the exchange, so a failed callback cannot be replayed.
    """
    ip = get_client_ip(request)

    if error:
        logger.error("OAuth error from Google: %s (ip=%s)", error, ip)
        if state:
            # The flow is over either way
            cache.consume(state)
        raise ProviderError(error)

    if not code or not state:
        logger.warning("Missing code or state in callback (ip=%s)", ip)
        raise InvalidRequest()

    pending = cache.consume(state)
    if pending is None:
        logger.warning("Invalid or expired state (ip=%s)", ip)
        raise StateNotFound()

    try:
        tokens = provider.exchange_code(code)
        user = provider.fetch_user_info(tokens.access_token)
    except ExchangeFailed as e:
        logger.error("Token exchange failed (ip=%s, flow started from %s): %s", ip, pending.origin_address, e)
        raise

    logger.info("OAuth success: email=%s has_refresh_token=%s", user.email, bool(tokens.refresh_token))

    # Raw tokens go back to the caller here; kept for API testing
    if response_format == "json":
        return {
            "success": True,
            "user": {"email": user.email, "name": user.name, "picture": user.picture},
            "tokens": {
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "expiry_date": tokens.expiry_date,
            },
        }

    return RedirectResponse(url=success_redirect_url(pending.return_url, user.email), status_code=302)


@router.post("/refresh")
def refresh(
    payload: RefreshRequest | None = None,
    provider: GoogleOAuthClient = Depends(get_provider),
):
    """Exchange a refresh_token for a new access token."""
    if payload is None or not payload.refresh_token:
        raise InvalidRequest("Missing refresh_token")
    try:
        tokens = provider.refresh_access_token(payload.refresh_token)
    except RefreshFailed as e:
        logger.error("Token refresh failed: %s", e)
        raise
    return {"access_token": tokens.access_token, "expiry_date": tokens.expiry_date}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and run the state sweeper for the lifetime of the app."""
    setup_logging()
    sweeper = StateSweeper(app.state.state_cache)
    app.state.sweeper = sweeper
    sweeper.start()
    logger.info("OAuth relay started; callback URL: %s", app.state.provider.redirect_uri)
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("OAuth relay stopped")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc, RelayError):
            message = exc.detail
        elif exc.status_code == 404:
            message = "Not found"
        else:
            message = str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request to %s: %s", request.url.path, exc.errors())
        err = InvalidRequest("Invalid request body")
        return JSONResponse(status_code=err.status_code, content={"error": err.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    state_cache: PendingStateCache | None = None,
    provider: GoogleOAuthClient | None = None,
    route_prefix: str = ROUTE_PREFIX,
    callback_path: str = CALLBACK_PATH,
) -> FastAPI:
    """Build the relay app. The cache and provider are owned by the app and injected into routes."""
    app = FastAPI(
        title="OAuth Relay",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.state_cache = state_cache if state_cache is not None else PendingStateCache()
    app.state.provider = provider if provider is not None else GoogleOAuthClient()
    install_security_headers(app)
    register_exception_handlers(app)
    app.include_router(router, prefix=route_prefix)
    # Registered separately: the path must match the redirect URI configured at Google
    app.add_api_route(f"{route_prefix}{callback_path}", callback, methods=["GET"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oauth_relay.main:app",
        host=LISTEN_HOST,
        port=LISTEN_PORT,
        proxy_headers=True,
        forwarded_allow_ips=FORWARDED_ALLOW_IPS,
        server_header=False,
    )
