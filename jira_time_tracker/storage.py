"""
Local key-value storage.

Every key is stored as its own JSON file in the storage directory. A missing
or unreadable file yields the key's default value.
"""

import copy
import json
import logging
import os
import sys
import tempfile
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from jira_time_tracker import config

logger = logging.getLogger(__name__)


class StorageKey(str, Enum):
    LOGINS = "logins"
    JIRA_ACCOUNT_TOKENS = "jiraAccountTokens"
    SETTINGS = "settings"
    WORKLOGS_LOCAL = "worklogsLocal"
    WORKLOGS_LOCAL_BACKUPS = "worklogsLocalBackups"
    WORKLOGS_REMOTE = "worklogsRemote"
    ACTIVE_TIMER = "activeTimer"
    LAST_VERSION = "lastVersion"


WORKING_TIME_COUNT_METHODS = ("all", "only_primary")

DEFAULT_SETTINGS = {
    "working_days": [0, 1, 2, 3, 4],
    "warning_when_editing_other_days": True,
    "enable_tracking_reminder": False,
    "tracking_reminder_time": {"hour": 18, "minute": 30},
    "working_time_count_method": "all",
    "hours_per_day": 8,
    "days_per_week": 5,
}

LOCK_FILE = ".lock"

DEFAULT_VALUES = {
    StorageKey.LOGINS: [],
    StorageKey.JIRA_ACCOUNT_TOKENS: {},
    StorageKey.SETTINGS: DEFAULT_SETTINGS,
    StorageKey.WORKLOGS_LOCAL: [],
    StorageKey.WORKLOGS_LOCAL_BACKUPS: [],
    StorageKey.WORKLOGS_REMOTE: [],
    StorageKey.ACTIVE_TIMER: None,
    StorageKey.LAST_VERSION: None,
}


class Storage:
    """Flat JSON blob per key."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else config.storage_dir()
        self._lock = threading.RLock()
        self._lock_depth = 0
        self._lock_file = None

    def _path(self, key: StorageKey) -> Path:
        return self.directory / f"{StorageKey(key).value}.json"

    def get(self, key: StorageKey) -> Any:
        key = StorageKey(key)
        default = copy.deepcopy(DEFAULT_VALUES[key])
        path = self._path(key)
        value = default
        if path.exists():
            try:
                with open(path) as f:
                    value = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read {key.value} from storage: {e}")
                value = default

        # Settings gain and lose keys between versions
        if key == StorageKey.SETTINGS:
            stored = value if isinstance(value, dict) else {}
            value = dict(default)
            value.update({k: v for k, v in stored.items() if k in default})

        return value

    def set(self, key: StorageKey, value: Any):
        key = StorageKey(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key.value}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(value, f, indent=2)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Stored {key.value}")

    def remove(self, key: StorageKey):
        path = self._path(StorageKey(key))
        if path.exists():
            path.unlink()
            logger.debug(f"Removed {StorageKey(key).value}")

    @contextmanager
    def locked(self):
        """Hold the storage lock for a read-modify-write.

        The lock is shared by every process using the same directory (the CLI
        and the sync service) and can be re-entered by the thread holding it.
        """
        with self._lock:
            if self._lock_depth == 0:
                self._acquire_file_lock()
            self._lock_depth += 1
            try:
                yield self
            finally:
                self._lock_depth -= 1
                if self._lock_depth == 0:
                    self._release_file_lock()

    def _acquire_file_lock(self):
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock_file = open(self.directory / LOCK_FILE, "a+")
        try:
            if sys.platform == "win32":
                import msvcrt
                self._lock_file.seek(0)
                msvcrt.locking(self._lock_file.fileno(), msvcrt.LK_LOCK, 1)
            else:
                import fcntl
                fcntl.flock(self._lock_file, fcntl.LOCK_EX)
        except OSError:
            self._lock_file.close()
            self._lock_file = None
            raise

    def _release_file_lock(self):
        try:
            if sys.platform == "win32":
                import msvcrt
                self._lock_file.seek(0)
                msvcrt.locking(self._lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                import fcntl
                fcntl.flock(self._lock_file, fcntl.LOCK_UN)
        finally:
            self._lock_file.close()
            self._lock_file = None
