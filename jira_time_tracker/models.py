"""Domain models: worklogs, accounts and tokens."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


class WorklogState(str, Enum):
    """Where a worklog stands relative to Jira."""

    SYNCED = "synced"    # identical to the remote worklog
    EDITED = "edited"    # exists remotely, changed locally
    LOCAL = "local"      # only exists locally
    DELETED = "deleted"  # exists remotely, deleted locally


@dataclass
class IssueRef:
    id: str
    key: str
    summary: str = ""
    project_key: str = ""

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "summary": self.summary,
            "project_key": self.project_key,
        }

    @classmethod
    def deserialize(cls, payload: dict) -> "IssueRef":
        return cls(
            id=str(payload.get("id", "")),
            key=payload.get("key", ""),
            summary=payload.get("summary", ""),
            project_key=payload.get("project_key", ""),
        )


@dataclass
class Worklog:
    """A block of time spent on an issue on a given day."""

    id: str
    issue: IssueRef
    started: str  # YYYY-MM-DD
    time_spent_seconds: int
    comment: str = ""
    state: WorklogState = WorklogState.LOCAL
    account_id: str = ""

    def copy(self, **changes) -> "Worklog":
        return replace(self, **changes)

    def serialize(self) -> dict:
        return {
            "id": self.id,
            "issue": self.issue.serialize(),
            "started": self.started,
            "time_spent_seconds": self.time_spent_seconds,
            "comment": self.comment,
            "state": self.state.value,
            "account_id": self.account_id,
        }

    @classmethod
    def deserialize(cls, payload: dict) -> "Worklog":
        return cls(
            id=str(payload.get("id", "")),
            issue=IssueRef.deserialize(payload.get("issue", {})),
            started=payload.get("started", ""),
            time_spent_seconds=int(payload.get("time_spent_seconds", 0)),
            comment=payload.get("comment", ""),
            state=WorklogState(payload.get("state", WorklogState.LOCAL.value)),
            account_id=payload.get("account_id", ""),
        )


@dataclass
class Account:
    """A Jira Cloud login: one user in one workspace."""

    account_id: str
    name: str
    cloud_id: str
    email: str = ""
    avatar_url: str = ""
    workspace_name: str = ""
    workspace_url: str = ""
    is_primary: bool = False

    def serialize(self) -> dict:
        return {
            "account_id": self.account_id,
            "name": self.name,
            "cloud_id": self.cloud_id,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "workspace_name": self.workspace_name,
            "workspace_url": self.workspace_url,
            "is_primary": self.is_primary,
        }

    @classmethod
    def deserialize(cls, payload: dict) -> "Account":
        return cls(
            account_id=payload.get("account_id", ""),
            name=payload.get("name", ""),
            cloud_id=payload.get("cloud_id", ""),
            email=payload.get("email", ""),
            avatar_url=payload.get("avatar_url", ""),
            workspace_name=payload.get("workspace_name", ""),
            workspace_url=payload.get("workspace_url", ""),
            is_primary=bool(payload.get("is_primary", False)),
        )


@dataclass
class AuthTokens:
    access_token: str
    refresh_token: str
    cloud_id: str = ""

    def serialize(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "cloud_id": self.cloud_id,
        }

    @classmethod
    def deserialize(cls, payload: Optional[dict]) -> Optional["AuthTokens"]:
        if not payload:
            return None
        return cls(
            access_token=payload.get("access_token", ""),
            refresh_token=payload.get("refresh_token", ""),
            cloud_id=payload.get("cloud_id", ""),
        )


@dataclass
class SyncResult:
    """Outcome of pushing local changes and refetching remote worklogs."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    fetched: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "SyncResult"):
        self.created += other.created
        self.updated += other.updated
        self.deleted += other.deleted
        self.failed += other.failed
        self.fetched += other.fetched
        self.errors.extend(other.errors)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return (
            f"{self.created} created, {self.updated} updated, {self.deleted} deleted, "
            f"{self.failed} failed, {self.fetched} fetched"
        )
