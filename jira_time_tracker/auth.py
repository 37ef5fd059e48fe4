"""
Atlassian OAuth 2.0 (3LO) for Jira Cloud

Handles:
- Building the authorization URL and catching the browser redirect
- Exchanging the authorization code for access and refresh tokens
- Refreshing access tokens
- Looking up the Jira workspace (cloud id) and the user behind a token
"""

import logging
import secrets
import time
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from jira_time_tracker.errors import OAuthError
from jira_time_tracker.models import Account, AuthTokens

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://auth.atlassian.com/authorize"
TOKEN_URL = "https://auth.atlassian.com/oauth/token"
ACCESSIBLE_RESOURCES_URL = "https://api.atlassian.com/oauth/token/accessible-resources"
ME_URL = "https://api.atlassian.com/me"

SCOPES = [
    "read:me",
    "read:account",
    "read:jira-user",
    "read:jira-work",
    "read:issue:jira",
    "read:issue-details:jira",
    "read:issue-worklog:jira",
    "read:issue-worklog.property:jira",
    "read:project:jira",
    "read:user:jira",
    "write:issue-worklog:jira",
    "write:issue-worklog.property:jira",
    "write:issue.time-tracking:jira",
    "delete:issue-worklog:jira",
    "delete:issue-worklog.property:jira",
    "offline_access",  # required to get a refresh token
]

INVALID_REFRESH_TOKEN = "refresh_token is invalid"


def new_state() -> str:
    return secrets.token_urlsafe(16)


def build_authorize_url(client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "audience": "api.atlassian.com",
        "client_id": client_id,
        "scope": " ".join(SCOPES),
        "redirect_uri": redirect_uri,
        "state": state,
        "response_type": "code",
        "prompt": "consent",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def _token_request(payload: dict) -> AuthTokens:
    response = requests.post(TOKEN_URL, json=payload, timeout=15)
    try:
        data = response.json()
    except ValueError:
        raise OAuthError(f"Token endpoint returned HTTP {response.status_code}")
    if "error" in data:
        raise OAuthError(data.get("error_description") or data["error"])
    if "access_token" not in data:
        raise OAuthError(f"Token endpoint returned HTTP {response.status_code} without a token")
    return AuthTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token", ""),
    )


def exchange_code(client_id: str, client_secret: str, code: str, redirect_uri: str) -> AuthTokens:
    """Exchange an authorization code for an access token and refresh token."""
    tokens = _token_request({
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
    })
    logger.info("Exchanged authorization code for tokens")
    return tokens


def refresh_access_token(client_id: str, client_secret: str, refresh_token: str) -> AuthTokens:
    """Get a new access and refresh token using a refresh token.

    Atlassian rotates refresh tokens, so the returned refresh token replaces
    the one passed in.
    """
    tokens = _token_request({
        "grant_type": "refresh_token",
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
    })
    logger.info("Refreshed Jira access token")
    return tokens


def request_account_data(access_token: str) -> Account:
    """Look up the first accessible Jira workspace and the current user."""
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    resp = requests.get(ACCESSIBLE_RESOURCES_URL, headers=headers, timeout=15)
    if resp.status_code != 200:
        raise OAuthError(f"Could not list Jira workspaces: HTTP {resp.status_code}")
    resources = resp.json()
    if not resources:
        raise OAuthError("This Atlassian account has no accessible Jira workspace")
    workspace = resources[0]

    resp = requests.get(ME_URL, headers=headers, timeout=15)
    if resp.status_code != 200:
        raise OAuthError(f"Could not load user profile: HTTP {resp.status_code}")
    user = resp.json()

    account = Account(
        account_id=user["account_id"],
        name=user.get("name", ""),
        email=user.get("email", ""),
        avatar_url=user.get("picture", ""),
        cloud_id=workspace["id"],
        workspace_name=workspace.get("name", ""),
        workspace_url=workspace.get("url", ""),
    )
    logger.info(f"Authenticated as {account.name} in workspace {account.workspace_name}")
    return account


class _RedirectHandler(BaseHTTPRequestHandler):
    """Captures the query string of the OAuth redirect."""

    def do_GET(self):
        parsed = urlparse(self.path)
        if parsed.path != self.server.expected_path:
            self.send_response(404)
            self.end_headers()
            return

        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        self.server.params = params

        self.send_response(200)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.end_headers()
        if "code" in params:
            message = "Logged in to Jira. You can close this window."
        else:
            message = "Jira login failed. You can close this window."
        self.wfile.write(f"<html><body><p>{message}</p></body></html>".encode())

    def log_message(self, format, *args):
        pass  # Suppress logging


def wait_for_redirect(redirect_uri: str, state: str, timeout: float = 300,
                      on_ready: Optional[Callable[[], None]] = None) -> str:
    """Serve the redirect URI locally until Atlassian redirects back.

    ``on_ready`` is called once the server listens. Returns the
    authorization code. Raises OAuthError on a state mismatch, an error
    redirect, or when no redirect arrives within ``timeout``.
    """
    parsed = urlparse(redirect_uri)
    host = parsed.hostname or "localhost"
    port = parsed.port or 80

    server = HTTPServer((host, port), _RedirectHandler)
    server.expected_path = parsed.path or "/"
    server.params = None
    server.timeout = 1.0
    deadline = time.monotonic() + timeout
    try:
        if on_ready:
            on_ready()
        while server.params is None:
            if time.monotonic() > deadline:
                raise OAuthError("Timed out waiting for the Jira login to complete")
            server.handle_request()
    finally:
        server.server_close()

    params = server.params
    if params.get("error"):
        raise OAuthError(params.get("error_description") or params["error"])
    if params.get("state") != state or not params.get("code"):
        raise OAuthError(
            "An error occurred while authenticating. Maybe your session timed out? Please try again."
        )
    return params["code"]


def authorize_in_browser(client_id: str, redirect_uri: str, timeout: float = 300,
                         open_browser=webbrowser.open) -> str:
    """Open the consent page and wait for the authorization code."""
    state = new_state()
    url = build_authorize_url(client_id, redirect_uri, state)

    def launch():
        logger.info("Opening Atlassian login in the browser")
        print(f"\nIf the browser does not open, visit:\n  {url}\n")
        try:
            open_browser(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")

    return wait_for_redirect(redirect_uri, state, timeout=timeout, on_ready=launch)
