"""Tests for the Atlassian OAuth helpers."""
import socket
import threading
import urllib.request
from urllib.parse import parse_qs, urlparse
from unittest.mock import patch

import pytest

from conftest import make_response
from jira_time_tracker import auth
from jira_time_tracker.errors import OAuthError


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]


def test_authorize_url_contains_offline_access():
    url = auth.build_authorize_url("cid", "http://localhost:8765/callback", "xyz")
    query = parse_qs(urlparse(url).query)
    assert url.startswith(auth.AUTHORIZE_URL)
    assert query["audience"] == ["api.atlassian.com"]
    assert query["state"] == ["xyz"]
    assert query["response_type"] == ["code"]
    assert query["prompt"] == ["consent"]
    scopes = query["scope"][0].split(" ")
    assert "offline_access" in scopes
    assert "write:issue-worklog:jira" in scopes


def test_states_are_unique():
    assert auth.new_state() != auth.new_state()


class TestTokenEndpoint:
    def test_exchange_code(self):
        response = make_response(200, {"access_token": "a", "refresh_token": "r", "expires_in": 3600})
        with patch("jira_time_tracker.auth.requests.post", return_value=response) as post:
            tokens = auth.exchange_code("cid", "secret", "the-code", "http://localhost/cb")

        assert (tokens.access_token, tokens.refresh_token) == ("a", "r")
        payload = post.call_args.kwargs["json"]
        assert payload["grant_type"] == "authorization_code"
        assert payload["code"] == "the-code"
        assert payload["redirect_uri"] == "http://localhost/cb"

    def test_error_response_raises_description(self):
        response = make_response(403, {"error": "invalid_grant", "error_description": "refresh_token is invalid"})
        with patch("jira_time_tracker.auth.requests.post", return_value=response):
            with pytest.raises(OAuthError, match="refresh_token is invalid"):
                auth.refresh_access_token("cid", "secret", "old")

    def test_non_json_response(self):
        response = make_response(502)
        response.json.side_effect = ValueError("no json")
        with patch("jira_time_tracker.auth.requests.post", return_value=response):
            with pytest.raises(OAuthError):
                auth.refresh_access_token("cid", "secret", "old")


def test_request_account_data():
    resources = make_response(200, [{"id": "cloud-9", "name": "Acme", "url": "https://acme.atlassian.net"}])
    me = make_response(200, {"account_id": "acc-9", "name": "Grace", "email": "g@acme.io", "picture": "p.png"})
    with patch("jira_time_tracker.auth.requests.get", side_effect=[resources, me]) as get:
        account = auth.request_account_data("token")

    assert get.call_args_list[0].args == (auth.ACCESSIBLE_RESOURCES_URL,)
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer token"
    assert account.account_id == "acc-9"
    assert account.cloud_id == "cloud-9"
    assert account.workspace_name == "Acme"


def test_request_account_data_without_workspace():
    with patch("jira_time_tracker.auth.requests.get", return_value=make_response(200, [])):
        with pytest.raises(OAuthError):
            auth.request_account_data("token")


class TestRedirectCapture:
    def _hit(self, url):
        def visit():
            with urllib.request.urlopen(url, timeout=5) as response:
                response.read()
        return lambda: threading.Thread(target=visit, daemon=True).start()

    def test_returns_code_for_matching_state(self):
        redirect = f"http://localhost:{free_port()}/callback"
        code = auth.wait_for_redirect(redirect, "s1", timeout=10,
                                      on_ready=self._hit(f"{redirect}?code=abc&state=s1"))
        assert code == "abc"

    def test_rejects_state_mismatch(self):
        redirect = f"http://localhost:{free_port()}/callback"
        with pytest.raises(OAuthError):
            auth.wait_for_redirect(redirect, "s1", timeout=10,
                                   on_ready=self._hit(f"{redirect}?code=abc&state=forged"))

    def test_times_out(self):
        redirect = f"http://localhost:{free_port()}/callback"
        with pytest.raises(OAuthError, match="Timed out"):
            auth.wait_for_redirect(redirect, "s1", timeout=0.5)
