"""
Worklog tracking.

Local changes live in ``worklogsLocal`` (states local, edited, deleted);
the last fetched Jira worklogs live in ``worklogsRemote``. Everything the
user sees is the remote cache with the local changes laid over it.
"""

import logging
import time
import uuid
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from jira_time_tracker import dates
from jira_time_tracker.accounts import AccountStore
from jira_time_tracker.models import IssueRef, Worklog, WorklogState
from jira_time_tracker.storage import Storage, StorageKey

logger = logging.getLogger(__name__)


class Tracker:
    """Worklog CRUD and the running timer."""

    def __init__(self, storage: Storage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.accounts = AccountStore(storage)
        self.clock = clock

    # ── persistence ──────────────────────────────────────────────────

    def local_worklogs(self) -> List[Worklog]:
        return [Worklog.deserialize(w) for w in self.storage.get(StorageKey.WORKLOGS_LOCAL)]

    def save_local_worklogs(self, worklogs: List[Worklog]):
        self.storage.set(StorageKey.WORKLOGS_LOCAL, [w.serialize() for w in worklogs])

    def remote_worklogs(self) -> List[Worklog]:
        return [Worklog.deserialize(w) for w in self.storage.get(StorageKey.WORKLOGS_REMOTE)]

    def save_remote_worklogs(self, worklogs: List[Worklog]):
        self.storage.set(StorageKey.WORKLOGS_REMOTE, [w.serialize() for w in worklogs])

    def settings(self) -> dict:
        return self.storage.get(StorageKey.SETTINGS)

    # ── merged view ──────────────────────────────────────────────────

    def worklogs(self) -> List[Worklog]:
        """All worklogs as they should appear to the user."""
        local = self.local_worklogs()
        local_by_id = {w.id: w for w in local}
        merged = []
        seen = set()
        for remote in self.remote_worklogs():
            change = local_by_id.get(remote.id)
            seen.add(remote.id)
            if change is None:
                merged.append(remote)
            elif change.state != WorklogState.DELETED:
                merged.append(change)
        for change in local:
            if change.id not in seen and change.state != WorklogState.DELETED:
                merged.append(change)
        merged.sort(key=lambda w: (w.started, w.issue.key))
        return merged

    def get_worklog(self, worklog_id: str) -> Optional[Worklog]:
        for worklog in self.worklogs():
            if worklog.id == worklog_id:
                return worklog
        return None

    def worklogs_for_date(self, day: dates.DateLike) -> List[Worklog]:
        key = dates.format_date(dates.as_date(day))
        return [w for w in self.worklogs() if w.started == key]

    def worklogs_for_week(self, day: dates.DateLike) -> List[Worklog]:
        keys = {dates.format_date(d) for d in dates.week_days(day)}
        return [w for w in self.worklogs() if w.started in keys]

    # ── edits ────────────────────────────────────────────────────────
    # Read-modify-writes hold the storage lock; the sync service shares these files.

    def add_worklog(self, issue: IssueRef, day: dates.DateLike, account_id: Optional[str] = None,
                    time_spent_seconds: int = 0, comment: str = "") -> Worklog:
        if account_id is None:
            primary = self.accounts.primary()
            account_id = primary.account_id if primary else ""
        worklog = Worklog(
            id=f"local-{uuid.uuid4()}",
            issue=issue,
            started=dates.format_date(dates.as_date(day)),
            time_spent_seconds=int(time_spent_seconds),
            comment=comment,
            state=WorklogState.LOCAL,
            account_id=account_id,
        )
        with self.storage.locked():
            local = self.local_worklogs()
            local.append(worklog)
            self.save_local_worklogs(local)
        logger.info(f"Added worklog {worklog.id} for {issue.key} on {worklog.started}")
        return worklog

    def update_worklog(self, worklog: Worklog) -> Worklog:
        """Store a changed worklog. Synced worklogs become edited."""
        with self.storage.locked():
            local = self.local_worklogs()
            for i, existing in enumerate(local):
                if existing.id == worklog.id:
                    state = WorklogState.LOCAL if existing.state == WorklogState.LOCAL else WorklogState.EDITED
                    updated = worklog.copy(state=state)
                    local[i] = updated
                    self.save_local_worklogs(local)
                    return updated

            if not any(r.id == worklog.id for r in self.remote_worklogs()):
                raise KeyError(f"Unknown worklog {worklog.id}")
            updated = worklog.copy(state=WorklogState.EDITED)
            local.append(updated)
            self.save_local_worklogs(local)
        logger.info(f"Edited worklog {worklog.id}")
        return updated

    def delete_worklog(self, worklog_id: str):
        """Drop local-only worklogs, mark remote ones for deletion."""
        with self.storage.locked():
            timer = self.active_timer()
            if timer and timer["worklog_id"] == worklog_id:
                self.storage.remove(StorageKey.ACTIVE_TIMER)

            local = self.local_worklogs()
            for i, existing in enumerate(local):
                if existing.id == worklog_id:
                    if existing.state == WorklogState.LOCAL:
                        del local[i]
                    else:
                        local[i] = existing.copy(state=WorklogState.DELETED)
                    self.save_local_worklogs(local)
                    logger.info(f"Deleted worklog {worklog_id}")
                    return

            for remote in self.remote_worklogs():
                if remote.id == worklog_id:
                    local.append(remote.copy(state=WorklogState.DELETED))
                    self.save_local_worklogs(local)
                    logger.info(f"Deleted worklog {worklog_id}")
                    return
        raise KeyError(f"Unknown worklog {worklog_id}")

    def assign_orphans(self, account_id: str) -> int:
        """Give local changes made before any login to ``account_id``."""
        with self.storage.locked():
            local = self.local_worklogs()
            orphans = [i for i, w in enumerate(local) if not w.account_id]
            for i in orphans:
                local[i] = local[i].copy(account_id=account_id)
            if orphans:
                self.save_local_worklogs(local)
        if orphans:
            logger.info(f"Assigned {len(orphans)} offline worklog(s) to {account_id}")
        return len(orphans)

    # ── timer ────────────────────────────────────────────────────────

    def active_timer(self) -> Optional[dict]:
        return self.storage.get(StorageKey.ACTIVE_TIMER)

    def elapsed(self) -> int:
        timer = self.active_timer()
        if not timer:
            return 0
        return max(0, int(self.clock() - timer["started_at"]))

    def start_timer(self, worklog_id: str):
        with self.storage.locked():
            timer = self.active_timer()
            if timer:
                if timer["worklog_id"] == worklog_id:
                    return
                self.stop_timer()
            if self.get_worklog(worklog_id) is None:
                raise KeyError(f"Unknown worklog {worklog_id}")
            self.storage.set(StorageKey.ACTIVE_TIMER, {"worklog_id": worklog_id, "started_at": self.clock()})
        logger.info(f"Started timer for worklog {worklog_id}")

    def stop_timer(self) -> Optional[Worklog]:
        """Stop the running timer and book the elapsed time."""
        with self.storage.locked():
            timer = self.active_timer()
            if not timer:
                return None
            elapsed = self.elapsed()
            self.storage.remove(StorageKey.ACTIVE_TIMER)
            worklog = self.get_worklog(timer["worklog_id"])
            if worklog is None:
                logger.warning(f"Timer stopped for missing worklog {timer['worklog_id']}")
                return None
            updated = self.update_worklog(worklog.copy(time_spent_seconds=worklog.time_spent_seconds + elapsed))
        logger.info(f"Stopped timer for worklog {worklog.id} after {elapsed}s")
        return updated

    def track(self, issue: IssueRef, account_id: Optional[str] = None, comment: str = "") -> Worklog:
        """Start a new worklog for today and run the timer on it."""
        worklog = self.add_worklog(issue, date.fromtimestamp(self.clock()), account_id, comment=comment)
        self.start_timer(worklog.id)
        return worklog

    # ── working time ─────────────────────────────────────────────────

    def _counts(self, worklog: Worklog) -> bool:
        if self.settings()["working_time_count_method"] != "only_primary":
            return True
        primary = self.accounts.primary()
        return primary is None or worklog.account_id == primary.account_id

    def tracked_seconds(self, day: dates.DateLike) -> int:
        key = dates.format_date(dates.as_date(day))
        worklogs = [w for w in self.worklogs_for_date(key) if self._counts(w)]
        total = sum(w.time_spent_seconds for w in worklogs)
        timer = self.active_timer()
        if timer and any(w.id == timer["worklog_id"] for w in worklogs):
            total += self.elapsed()
        return total

    def week_summary(self, day: dates.DateLike) -> List[Tuple[date, int]]:
        """Tracked seconds per day of the week; non-working days only when tracked."""
        working_days = self.settings()["working_days"]
        summary = []
        for d in dates.week_days(day):
            seconds = self.tracked_seconds(d)
            if d.weekday() in working_days or seconds:
                summary.append((d, seconds))
        return summary

    def is_other_day(self, day: dates.DateLike) -> bool:
        return dates.as_date(day) != date.fromtimestamp(self.clock())

    def tracking_reminder_due(self, now: Optional[datetime] = None) -> bool:
        settings = self.settings()
        if not settings["enable_tracking_reminder"]:
            return False
        now = now or datetime.fromtimestamp(self.clock())
        if now.weekday() not in settings["working_days"]:
            return False
        reminder = settings["tracking_reminder_time"]
        if (now.hour, now.minute) < (reminder["hour"], reminder["minute"]):
            return False
        return self.tracked_seconds(now.date()) == 0
