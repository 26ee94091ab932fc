"""
Pytest configuration for oauth_relay. Fixed Google client settings so tests never
depend on the developer's environment; set before oauth_relay.config is imported.
"""
import os

os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "https://relay.example/callback"
os.environ["DEFAULT_RETURN_URL"] = "https://app.example/"
os.environ["ROUTE_PREFIX"] = ""
os.environ["CALLBACK_PATH"] = "/callback"
