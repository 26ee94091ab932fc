"""
OAuth relay configuration. Credentials and deployment values come from env
(or a .env file in the working directory); no secrets in this file.
"""
import os

from dotenv import load_dotenv

# Real environment variables win over .env entries
load_dotenv()

# Google OAuth client registered for this relay
CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")

# Callback URL Google redirects to; must match the client's registered redirect URIs
REDIRECT_URI = os.environ.get("GOOGLE_REDIRECT_URI", "http://127.0.0.1:3847/callback")

LISTEN_HOST = os.environ.get("HOST", "127.0.0.1")
LISTEN_PORT = int(os.environ.get("PORT", "3847"))

# Where /callback sends the browser when /auth was called without return_url
DEFAULT_RETURN_URL = os.environ.get("DEFAULT_RETURN_URL", "").strip() or "/"

# Path prefix for all routes, e.g. "/precombopulator" when mounted behind nginx
ROUTE_PREFIX = os.environ.get("ROUTE_PREFIX", "").strip().rstrip("/")

# Path Google redirects back to, below ROUTE_PREFIX (e.g. "/yellfront" on the deployed host)
CALLBACK_PATH = "/" + os.environ.get("CALLBACK_PATH", "/callback").strip().strip("/")

# Proxies whose X-Forwarded-For is trusted (passed to uvicorn)
FORWARDED_ALLOW_IPS = os.environ.get("FORWARDED_ALLOW_IPS", "127.0.0.1")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Timeout for each call to Google (seconds)
PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("OAUTH_PROVIDER_TIMEOUT", "10.0"))

# Pending CSRF state lifetime and how often expired entries are swept
STATE_TTL_SECONDS = 600
STATE_SWEEP_INTERVAL_SECONDS = 300

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Gmail + Calendar + Contacts, plus identity for the success redirect
SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
