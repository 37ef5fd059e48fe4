"""
Worklog synchronization with Jira.

Pushes local changes (created, edited and deleted worklogs) to Jira, then
refetches the account's remote worklogs. Items that fail to push stay in
the local change list and are retried on the next sync. Local changes win
over edits made in Jira since the last fetch.
"""

import logging
from typing import Callable, Optional

import requests

from jira_time_tracker.errors import (
    JiraApiError,
    NotLoggedInError,
    SessionExpiredError,
    TimeTrackerError,
)
from jira_time_tracker.jira_client import JiraClient, get_jira_client
from jira_time_tracker.models import SyncResult, Worklog, WorklogState
from jira_time_tracker.storage import StorageKey
from jira_time_tracker.tracker import Tracker

logger = logging.getLogger(__name__)


class WorklogSync:

    def __init__(self, tracker: Tracker, client_for: Callable[[str], JiraClient] = get_jira_client):
        self.tracker = tracker
        self.storage = tracker.storage
        self.client_for = client_for

    def _push(self, client: JiraClient, worklog: Worklog, result: SyncResult) -> Optional[Worklog]:
        """Push one local change. Returns the synced worklog (None for deletions)."""
        if worklog.state == WorklogState.LOCAL:
            synced = client.create_worklog(worklog)
            result.created += 1
            return synced

        if worklog.state == WorklogState.EDITED:
            try:
                synced = client.update_worklog(worklog)
            except JiraApiError as e:
                if e.status_code != 404:
                    raise
                logger.warning(f"Worklog {worklog.id} no longer exists in Jira, recreating it")
                synced = client.create_worklog(worklog)
            result.updated += 1
            return synced

        if worklog.state == WorklogState.DELETED:
            try:
                client.delete_worklog(worklog)
            except JiraApiError as e:
                if e.status_code != 404:
                    raise
                logger.info(f"Worklog {worklog.id} was already deleted in Jira")
            result.deleted += 1
            return None

        return worklog

    def _settle(self, pushed: Worklog, synced: Optional[Worklog]):
        """Record a pushed change in the local list, the remote cache and the timer.

        Storage is read again under the lock. A change that was edited again
        while its push was in flight stays local, pointing at the remote id.
        """
        with self.storage.locked():
            local = []
            for w in self.tracker.local_worklogs():
                if w.id != pushed.id:
                    local.append(w)
                elif w != pushed and synced is not None:
                    logger.info(f"Worklog {w.id} changed during sync, keeping the newer version")
                    state = WorklogState.EDITED if w.state == WorklogState.LOCAL else w.state
                    local.append(w.copy(id=synced.id, state=state))
            self.tracker.save_local_worklogs(local)

            remote = [r for r in self.tracker.remote_worklogs() if r.id != pushed.id]
            if synced is not None:
                remote.append(synced.copy(state=WorklogState.SYNCED))
            self.tracker.save_remote_worklogs(remote)

            timer = self.tracker.active_timer()
            if timer and timer["worklog_id"] == pushed.id:
                if synced is None:
                    self.storage.remove(StorageKey.ACTIVE_TIMER)
                elif synced.id != pushed.id:
                    timer["worklog_id"] = synced.id
                    self.storage.set(StorageKey.ACTIVE_TIMER, timer)

    def sync_account(self, account_id: str) -> SyncResult:
        """Push local changes of one account and refresh its remote worklogs."""
        client = self.client_for(account_id)
        result = SyncResult()

        with self.storage.locked():
            local = self.tracker.local_worklogs()
            self.storage.set(StorageKey.WORKLOGS_LOCAL_BACKUPS, [w.serialize() for w in local])

        # Failed changes are simply left in the local list for the next sync
        for worklog in [w for w in local if w.account_id == account_id]:
            try:
                synced = self._push(client, worklog, result)
            except (JiraApiError, requests.RequestException) as e:
                logger.error(f"Failed to sync worklog {worklog.id} ({worklog.issue.key}): {e}")
                result.failed += 1
                result.errors.append(f"{worklog.issue.key}: {e}")
                continue
            self._settle(worklog, synced)

        try:
            fetched = client.get_remote_worklogs(account_id)
        except SessionExpiredError:
            raise
        except (TimeTrackerError, requests.RequestException) as e:
            logger.error(f"Failed to fetch remote worklogs for {account_id}: {e}")
            result.failed += 1
            result.errors.append(f"fetch: {e}")
            return result

        with self.storage.locked():
            others = [r for r in self.tracker.remote_worklogs() if r.account_id != account_id]
            self.tracker.save_remote_worklogs(others + fetched)
        result.fetched = len(fetched)
        logger.info(f"Synced account {account_id}: {result.summary()}")
        return result

    def sync_all(self) -> SyncResult:
        """Sync every logged-in account; one failing account does not stop the others."""
        total = SyncResult()
        primary = self.tracker.accounts.primary()
        if primary is not None:
            self.tracker.assign_orphans(primary.account_id)

        for account in self.tracker.accounts.accounts():
            try:
                total.merge(self.sync_account(account.account_id))
            except SessionExpiredError as e:
                logger.warning(str(e))
                total.failed += 1
                total.errors.append(str(e))
            except NotLoggedInError as e:
                logger.warning(f"Skipping {account.name}: {e}")
                total.failed += 1
                total.errors.append(str(e))
            except (TimeTrackerError, requests.RequestException) as e:
                logger.error(f"Sync of {account.name} failed: {e}")
                total.failed += 1
                total.errors.append(f"{account.name}: {e}")
        return total
