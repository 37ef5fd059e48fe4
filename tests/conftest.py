import json
from unittest.mock import MagicMock

import pytest

from jira_time_tracker.accounts import AccountStore
from jira_time_tracker.models import Account, AuthTokens, IssueRef, Worklog, WorklogState
from jira_time_tracker.storage import Storage, StorageKey
from jira_time_tracker.tracker import Tracker

ACCOUNT_ID = "acc-1"
CLOUD_ID = "cloud-1"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_response(status_code=200, payload=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = text if text is not None else json.dumps(payload or {})
    return response


def make_worklog(id="100", key="PROJ-1", started="2024-03-05", seconds=3600,
                 state=WorklogState.SYNCED, account_id=ACCOUNT_ID, comment=""):
    return Worklog(
        id=id,
        issue=IssueRef(id=f"1{key[-1]}", key=key, summary=f"Summary of {key}"),
        started=started,
        time_spent_seconds=seconds,
        comment=comment,
        state=state,
        account_id=account_id,
    )


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("JIRA_TIME_TRACKER_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("JIRA_CLIENT_ID", raising=False)
    monkeypatch.delenv("JIRA_SECRET", raising=False)
    monkeypatch.delenv("JIRA_REDIRECT_URI", raising=False)


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "storage")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(storage, clock):
    return Tracker(storage, clock=clock)


@pytest.fixture
def logged_in(storage):
    """Storage with one primary account and valid tokens."""
    accounts = AccountStore(storage)
    accounts.upsert(Account(account_id=ACCOUNT_ID, name="Ada", cloud_id=CLOUD_ID,
                            email="ada@example.com", workspace_name="Example"))
    accounts.set_tokens(ACCOUNT_ID, AuthTokens("access-1", "refresh-1", CLOUD_ID))
    return accounts


@pytest.fixture
def remote_cache(storage):
    def seed(*worklogs):
        storage.set(StorageKey.WORKLOGS_REMOTE, [w.serialize() for w in worklogs])
    return seed
