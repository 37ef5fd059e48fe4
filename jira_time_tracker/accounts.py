"""Logged-in Jira accounts and their OAuth tokens."""

import logging
from typing import List, Optional

from jira_time_tracker.models import Account, AuthTokens
from jira_time_tracker.storage import Storage, StorageKey

logger = logging.getLogger(__name__)


class AccountStore:
    """Reads and writes the ``logins`` and ``jiraAccountTokens`` storage keys."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def accounts(self) -> List[Account]:
        return [Account.deserialize(a) for a in self.storage.get(StorageKey.LOGINS)]

    def get(self, account_id: str) -> Optional[Account]:
        for account in self.accounts():
            if account.account_id == account_id:
                return account
        return None

    def primary(self) -> Optional[Account]:
        accounts = self.accounts()
        for account in accounts:
            if account.is_primary:
                return account
        return accounts[0] if accounts else None

    def upsert(self, account: Account) -> Account:
        """Add or replace an account. The first account becomes primary."""
        with self.storage.locked():
            others = [a for a in self.accounts() if a.account_id != account.account_id]
            if not others:
                account.is_primary = True
            elif account.is_primary:
                for other in others:
                    other.is_primary = False
            self.storage.set(StorageKey.LOGINS, [a.serialize() for a in others + [account]])
        return account

    def remove(self, account_id: str):
        with self.storage.locked():
            remaining = [a for a in self.accounts() if a.account_id != account_id]
            if remaining and not any(a.is_primary for a in remaining):
                remaining[0].is_primary = True
                logger.info(f"{remaining[0].name} is now the primary account")
            self.storage.set(StorageKey.LOGINS, [a.serialize() for a in remaining])
            self.clear_tokens(account_id)

    def set_primary(self, account_id: str):
        accounts = self.accounts()
        if not any(a.account_id == account_id for a in accounts):
            raise KeyError(account_id)
        for account in accounts:
            account.is_primary = account.account_id == account_id
        self.storage.set(StorageKey.LOGINS, [a.serialize() for a in accounts])

    def tokens(self, account_id: str) -> Optional[AuthTokens]:
        return AuthTokens.deserialize(self.storage.get(StorageKey.JIRA_ACCOUNT_TOKENS).get(account_id))

    def set_tokens(self, account_id: str, tokens: AuthTokens):
        with self.storage.locked():
            all_tokens = self.storage.get(StorageKey.JIRA_ACCOUNT_TOKENS)
            all_tokens[account_id] = tokens.serialize()
            self.storage.set(StorageKey.JIRA_ACCOUNT_TOKENS, all_tokens)

    def clear_tokens(self, account_id: str):
        with self.storage.locked():
            all_tokens = self.storage.get(StorageKey.JIRA_ACCOUNT_TOKENS)
            if all_tokens.pop(account_id, None) is not None:
                self.storage.set(StorageKey.JIRA_ACCOUNT_TOKENS, all_tokens)
