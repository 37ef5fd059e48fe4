"""
Application wiring: storage, accounts, Jira clients, tracker and sync.

Both the command line interface and the background sync service build one
TimeTrackerApp and work through it.
"""

import logging
import webbrowser
from typing import Optional

from jira_time_tracker import __version__, auth, config
from jira_time_tracker.accounts import AccountStore
from jira_time_tracker.errors import NotLoggedInError
from jira_time_tracker.jira_client import JiraClient, get_jira_client, register_client, unregister_client
from jira_time_tracker.models import Account, AuthTokens
from jira_time_tracker.storage import Storage, StorageKey
from jira_time_tracker.tracker import Tracker
from jira_time_tracker.worklog_sync import WorklogSync

logger = logging.getLogger(__name__)


class TimeTrackerApp:

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or Storage()
        self.accounts = AccountStore(self.storage)
        self.tracker = Tracker(self.storage)
        self.sync = WorklogSync(self.tracker)
        self._credentials = None

    @property
    def credentials(self) -> tuple:
        """(client_id, client_secret, redirect_uri) of the OAuth app."""
        if self._credentials is None:
            self._credentials = config.load_oauth_credentials()
        return self._credentials

    def record_version(self) -> Optional[str]:
        """Store the running version and return the previously stored one."""
        previous = self.storage.get(StorageKey.LAST_VERSION)
        if previous != __version__:
            self.storage.set(StorageKey.LAST_VERSION, __version__)
            if previous:
                logger.info(f"Upgraded from {previous} to {__version__}")
        return previous

    def _build_client(self, account_id: str) -> JiraClient:
        client_id, secret, _ = self.credentials
        settings = self.storage.get(StorageKey.SETTINGS)
        client = JiraClient(
            account_id,
            self.accounts,
            client_id,
            secret,
            hours_per_day=settings["hours_per_day"],
            days_per_week=settings["days_per_week"],
        )
        register_client(client)
        return client

    def connect(self) -> int:
        """Register a Jira client for every account that still has tokens."""
        connected = 0
        for account in self.accounts.accounts():
            if self.accounts.tokens(account.account_id) is None:
                logger.warning(f"{account.name} ({account.workspace_name}) needs to log in again")
                continue
            self._build_client(account.account_id)
            connected += 1
        logger.debug(f"Connected {connected} Jira account(s)")
        return connected

    def client(self, account_id: Optional[str] = None) -> JiraClient:
        if account_id is None:
            primary = self.accounts.primary()
            if primary is None:
                raise NotLoggedInError("Not logged in to Jira")
            account_id = primary.account_id
        return get_jira_client(account_id)

    def login(self, open_browser=webbrowser.open, timeout: float = 300) -> Account:
        """Run the OAuth flow and initialize the new account."""
        client_id, secret, redirect_uri = self.credentials
        code = auth.authorize_in_browser(client_id, redirect_uri, timeout=timeout, open_browser=open_browser)
        tokens = auth.exchange_code(client_id, secret, code, redirect_uri)
        return self.initialize_account(tokens)

    def initialize_account(self, tokens: AuthTokens) -> Account:
        """Store tokens and account data, then load the account's worklogs."""
        account = auth.request_account_data(tokens.access_token)
        self.accounts.set_tokens(
            account.account_id,
            AuthTokens(tokens.access_token, tokens.refresh_token, account.cloud_id),
        )
        existing = self.accounts.get(account.account_id)
        if existing is not None:
            account.is_primary = existing.is_primary
        account = self.accounts.upsert(account)

        if account.is_primary:
            self.tracker.assign_orphans(account.account_id)

        client = self._build_client(account.account_id)
        worklogs = client.get_remote_worklogs(account.account_id)
        with self.storage.locked():
            others = [w for w in self.tracker.remote_worklogs() if w.account_id != account.account_id]
            self.tracker.save_remote_worklogs(others + worklogs)
        logger.info(f"Logged in as {account.name}, loaded {len(worklogs)} worklogs")
        return account

    def logout(self, account_id: str):
        """Forget an account, its tokens and all of its worklogs."""
        account = self.accounts.get(account_id)
        if account is None:
            raise NotLoggedInError(f"Unknown account {account_id}")

        with self.storage.locked():
            timer = self.tracker.active_timer()
            if timer:
                worklog = self.tracker.get_worklog(timer["worklog_id"])
                if worklog is None or worklog.account_id == account_id:
                    self.storage.remove(StorageKey.ACTIVE_TIMER)

            self.tracker.save_remote_worklogs(
                [w for w in self.tracker.remote_worklogs() if w.account_id != account_id]
            )
            self.tracker.save_local_worklogs(
                [w for w in self.tracker.local_worklogs() if w.account_id != account_id]
            )
        self.accounts.remove(account_id)
        unregister_client(account_id)
        logger.info(f"Logged out {account.name}")
