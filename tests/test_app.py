"""Tests for login, logout and client wiring."""
from unittest.mock import patch

import pytest

from conftest import ACCOUNT_ID, make_worklog
from jira_time_tracker import __version__, config
from jira_time_tracker.app import TimeTrackerApp
from jira_time_tracker.errors import ConfigError, NotLoggedInError
from jira_time_tracker.jira_client import get_jira_client, unregister_client
from jira_time_tracker.models import Account, AuthTokens, IssueRef
from jira_time_tracker.storage import StorageKey


@pytest.fixture
def app(storage):
    config.save_config({"jira_client_id": "cid", "jira_client_secret": "secret"})
    yield TimeTrackerApp(storage)
    for account_id in (ACCOUNT_ID, "acc-2"):
        unregister_client(account_id)


def test_record_version(app):
    assert app.record_version() is None
    assert app.record_version() == __version__


def test_connect_registers_clients_for_accounts_with_tokens(app, logged_in):
    logged_in.upsert(Account(account_id="acc-2", name="Expired", cloud_id="c2"))
    assert app.connect() == 1
    assert get_jira_client(ACCOUNT_ID).account_id == ACCOUNT_ID
    with pytest.raises(NotLoggedInError):
        get_jira_client("acc-2")


def test_client_requires_login(app):
    with pytest.raises(NotLoggedInError):
        app.client()


def test_missing_credentials(storage):
    with pytest.raises(ConfigError):
        TimeTrackerApp(storage).credentials


def test_initialize_account_stores_login_and_worklogs(app, remote_cache):
    remote_cache(make_worklog("old", account_id="acc-2"))
    account = Account(account_id=ACCOUNT_ID, name="Ada", cloud_id="cloud-1", workspace_name="Example")
    fetched = [make_worklog("100")]

    with patch("jira_time_tracker.app.auth.request_account_data", return_value=account), \
            patch("jira_time_tracker.jira_client.JiraClient.get_remote_worklogs", return_value=fetched):
        result = app.initialize_account(AuthTokens("access", "refresh"))

    assert result.is_primary
    assert app.accounts.tokens(ACCOUNT_ID) == AuthTokens("access", "refresh", "cloud-1")
    assert sorted(w.id for w in app.tracker.remote_worklogs()) == ["100", "old"]
    assert get_jira_client(ACCOUNT_ID).account_id == ACCOUNT_ID


def test_login_runs_the_browser_flow(app):
    account = Account(account_id=ACCOUNT_ID, name="Ada", cloud_id="cloud-1")
    with patch("jira_time_tracker.app.auth.authorize_in_browser", return_value="code-1") as authorize, \
            patch("jira_time_tracker.app.auth.exchange_code", return_value=AuthTokens("a", "r")) as exchange, \
            patch("jira_time_tracker.app.auth.request_account_data", return_value=account), \
            patch("jira_time_tracker.jira_client.JiraClient.get_remote_worklogs", return_value=[]):
        app.login(open_browser=lambda url: True)

    assert authorize.call_args.args == ("cid", config.DEFAULT_REDIRECT_URI)
    assert exchange.call_args.args == ("cid", "secret", "code-1", config.DEFAULT_REDIRECT_URI)


def test_logout_removes_everything_of_the_account(app, logged_in, remote_cache, storage):
    logged_in.upsert(Account(account_id="acc-2", name="Side", cloud_id="c2"))
    remote_cache(make_worklog("1"), make_worklog("2", account_id="acc-2"))
    worklog = app.tracker.add_worklog(IssueRef("1", "PROJ-1"), "2024-03-05", ACCOUNT_ID)
    app.tracker.start_timer(worklog.id)

    app.logout(ACCOUNT_ID)

    assert [a.account_id for a in app.accounts.accounts()] == ["acc-2"]
    assert app.accounts.primary().account_id == "acc-2"
    assert app.accounts.tokens(ACCOUNT_ID) is None
    assert [w.id for w in app.tracker.worklogs()] == ["2"]
    assert storage.get(StorageKey.ACTIVE_TIMER) is None


def test_logout_unknown_account(app):
    with pytest.raises(NotLoggedInError):
        app.logout("nobody")


def test_first_login_adopts_offline_worklogs(app):
    offline = app.tracker.add_worklog(IssueRef("PROJ-3", "PROJ-3"), "2024-03-05", time_spent_seconds=600)
    assert offline.account_id == ""
    account = Account(account_id=ACCOUNT_ID, name="Ada", cloud_id="cloud-1")

    with patch("jira_time_tracker.app.auth.request_account_data", return_value=account), \
            patch("jira_time_tracker.jira_client.JiraClient.get_remote_worklogs", return_value=[]):
        app.initialize_account(AuthTokens("access", "refresh"))

    [worklog] = app.tracker.local_worklogs()
    assert worklog.id == offline.id
    assert worklog.account_id == ACCOUNT_ID
