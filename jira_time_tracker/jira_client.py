"""
Jira Client for the Jira Time Tracker

Handles:
- Authenticated Jira Cloud REST calls with token refresh on 401
- Fetching the current user's worklogs of the last four weeks
- Searching issues
- Creating, updating and deleting worklogs
"""

import logging
import re
import time
from typing import Dict, List, Optional

import requests

from jira_time_tracker import adf, dates, durations
from jira_time_tracker.accounts import AccountStore
from jira_time_tracker.auth import INVALID_REFRESH_TOKEN, refresh_access_token
from jira_time_tracker.errors import (
    JiraApiError,
    NotLoggedInError,
    OAuthError,
    SessionExpiredError,
    TooManyRequestsError,
)
from jira_time_tracker.models import AuthTokens, IssueRef, Worklog, WorklogState

logger = logging.getLogger(__name__)

API_ROOT = "https://api.atlassian.com/ex/jira"

REMOTE_WINDOW_SECONDS = 4 * 7 * 24 * 3600
MAX_ISSUES_RESULTS = 40
MAX_WORKLOG_RESULTS = 5000
MAX_PAGES = 20
MIN_WORKLOG_SECONDS = 60

_ISSUE_KEY = re.compile(r"^[A-Za-z][A-Za-z0-9_]*-\d+$")


class JiraClient:
    """Handles Jira REST API interactions for one logged-in account."""

    def __init__(
        self,
        account_id: str,
        accounts: AccountStore,
        client_id: str,
        client_secret: str,
        hours_per_day: float = durations.HOURS_PER_DAY,
        days_per_week: float = durations.DAYS_PER_WEEK,
        timeout: float = 15,
    ):
        self.account_id = account_id
        self.accounts = accounts
        self.client_id = client_id
        self.client_secret = client_secret
        self.hours_per_day = hours_per_day
        self.days_per_week = days_per_week
        self.timeout = timeout

    # ── transport ────────────────────────────────────────────────────

    def _tokens(self) -> AuthTokens:
        tokens = self.accounts.tokens(self.account_id)
        if tokens is None:
            raise NotLoggedInError(f"No Jira session for account {self.account_id}")
        return tokens

    @property
    def base_url(self) -> str:
        tokens = self._tokens()
        cloud_id = tokens.cloud_id
        if not cloud_id:
            account = self.accounts.get(self.account_id)
            cloud_id = account.cloud_id if account else ""
        return f"{API_ROOT}/{cloud_id}/rest/api/3"

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        tokens = self._tokens()
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {tokens.access_token}",
        }
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"
        return requests.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )

    def _refresh_tokens(self):
        tokens = self._tokens()
        if not tokens.refresh_token:
            raise JiraApiError("Jira rejected the access token and no refresh token is stored", 401)
        try:
            fresh = refresh_access_token(self.client_id, self.client_secret, tokens.refresh_token)
        except OAuthError as e:
            if INVALID_REFRESH_TOKEN in str(e):
                # Refresh tokens expire after 90 days of inactivity
                logger.warning(f"Refresh token for {self.account_id} expired, logging out")
                self.accounts.clear_tokens(self.account_id)
                raise SessionExpiredError(self.account_id) from e
            raise
        self.accounts.set_tokens(
            self.account_id,
            AuthTokens(fresh.access_token, fresh.refresh_token or tokens.refresh_token, tokens.cloud_id),
        )

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send a request; on 401 refresh the tokens and retry once."""
        response = self._send(method, path, **kwargs)
        if response.status_code == 401:
            logger.info("Jira returned 401, refreshing access token")
            self._refresh_tokens()
            response = self._send(method, path, **kwargs)

        if response.status_code >= 400:
            raise JiraApiError(
                f"Jira {method} {path} failed: HTTP {response.status_code} - {response.text[:200]}",
                response.status_code,
            )
        return response

    # ── reads ────────────────────────────────────────────────────────

    def myself(self) -> dict:
        return self.request("GET", "/myself").json()

    def search_jql(self, jql: str, fields: List[str], max_results: int,
                   next_page_token: Optional[str] = None) -> dict:
        body = {"jql": jql, "fields": fields, "maxResults": max_results}
        if next_page_token:
            body["nextPageToken"] = next_page_token
        return self.request("POST", "/search/jql", json=body).json()

    def get_issue_worklogs(self, issue_id: str, start_at: int = 0,
                           max_results: int = MAX_WORKLOG_RESULTS,
                           started_after: Optional[int] = None) -> dict:
        params = {"startAt": start_at, "maxResults": max_results}
        if started_after is not None:
            params["startedAfter"] = started_after
        return self.request("GET", f"/issue/{issue_id}/worklog", params=params).json()

    def _issue_ref(self, issue: dict) -> IssueRef:
        fields = issue.get("fields") or {}
        return IssueRef(
            id=str(issue.get("id", "")),
            key=issue.get("key", ""),
            summary=fields.get("summary", ""),
            project_key=(fields.get("project") or {}).get("key", ""),
        )

    def convert_worklogs(self, worklogs: List[dict], account_id: str, issue: IssueRef) -> List[Worklog]:
        """Convert Jira worklogs of ``account_id`` into synced worklogs."""
        result = []
        for wl in worklogs or []:
            if (wl.get("author") or {}).get("accountId") != account_id:
                continue
            if not wl.get("started"):
                continue
            seconds = wl.get("timeSpentSeconds")
            if seconds is None:
                if not wl.get("timeSpent"):
                    continue
                try:
                    seconds = durations.parse_jira_duration(
                        wl["timeSpent"], self.hours_per_day, self.days_per_week
                    )
                except ValueError:
                    logger.warning(f"Skipping worklog {wl.get('id')} with unreadable duration {wl['timeSpent']!r}")
                    continue
            result.append(Worklog(
                id=str(wl.get("id", "")),
                issue=issue,
                started=dates.local_date_of(wl["started"]),
                time_spent_seconds=int(seconds),
                comment=adf.adf_to_text(wl.get("comment")),
                state=WorklogState.SYNCED,
                account_id=account_id,
            ))
        return result

    def _all_issue_worklogs(self, issue: IssueRef, account_id: str, started_after: int) -> List[Worklog]:
        worklogs = []
        start_at = 0
        total = 1
        pages = 0
        while start_at < total:
            if pages >= MAX_PAGES:
                raise TooManyRequestsError(f"Too many worklog calls for issue {issue.key}")
            page = self.get_issue_worklogs(issue.id, start_at, MAX_WORKLOG_RESULTS, started_after)
            pages += 1
            worklogs.extend(self.convert_worklogs(page.get("worklogs", []), account_id, issue))
            start_at += MAX_WORKLOG_RESULTS
            total = page.get("total") or 0
        return worklogs

    def get_remote_worklogs(self, account_id: Optional[str] = None) -> List[Worklog]:
        """Load all worklogs of the last four weeks of the user from Jira."""
        account_id = account_id or self.account_id
        started_after = int((time.time() - REMOTE_WINDOW_SECONDS) * 1000)
        jql = f"worklogAuthor = {account_id} AND worklogDate > -4w"

        worklogs = []
        next_page_token = None
        pages = 0
        while True:
            if pages >= MAX_PAGES:
                raise TooManyRequestsError("Too many issue search calls")
            page = self.search_jql(jql, ["summary", "project", "worklog"], MAX_ISSUES_RESULTS, next_page_token)
            pages += 1

            for issue in page.get("issues", []):
                ref = self._issue_ref(issue)
                inline = (issue.get("fields") or {}).get("worklog") or {}
                total = inline.get("total")
                if total is not None and total <= inline.get("maxResults", 0):
                    # This issue already has all worklogs
                    worklogs.extend(self.convert_worklogs(inline.get("worklogs", []), account_id, ref))
                else:
                    worklogs.extend(self._all_issue_worklogs(ref, account_id, started_after))

            next_page_token = page.get("nextPageToken")
            if page.get("isLast", True) or not next_page_token:
                break

        logger.info(f"Fetched {len(worklogs)} remote worklogs for {account_id}")
        return worklogs

    def search_issues(self, query: str, max_results: int = 50) -> List[IssueRef]:
        """Find issues whose summary or description matches ``query``."""
        query = query.strip()
        escaped = query.replace("\\", "\\\\").replace('"', '\\"')
        text_jql = f'summary ~ "{escaped}" OR description ~ "{escaped}" ORDER BY created DESC'
        fields = ["summary", "project"]
        if not _ISSUE_KEY.match(query):
            page = self.search_jql(text_jql, fields, max_results)
        else:
            try:
                page = self.search_jql(f'key = "{query.upper()}" OR {text_jql}', fields, max_results)
            except JiraApiError as e:
                # Jira rejects the whole query when the key or its project does not exist
                if e.status_code != 400:
                    raise
                logger.debug(f"{query!r} is not an existing issue key, searching text only")
                page = self.search_jql(text_jql, fields, max_results)
        issues = [self._issue_ref(issue) for issue in page.get("issues", [])]
        logger.info(f"Found {len(issues)} issues for {query!r}")
        return issues

    # ── writes ───────────────────────────────────────────────────────

    def _worklog_payload(self, worklog: Worklog) -> dict:
        payload = {
            "started": dates.format_jira_datetime(worklog.started),
            "timeSpentSeconds": max(MIN_WORKLOG_SECONDS, int(worklog.time_spent_seconds)),
        }
        if worklog.comment:
            payload["comment"] = adf.text_to_adf(worklog.comment)
        return payload

    def create_worklog(self, worklog: Worklog) -> Worklog:
        """Create the worklog in Jira and return it with its remote id."""
        response = self.request(
            "POST", f"/issue/{worklog.issue.id}/worklog", json=self._worklog_payload(worklog)
        )
        remote_id = str(response.json().get("id", ""))
        logger.info(f"Logged {worklog.time_spent_seconds}s to {worklog.issue.key} (worklog {remote_id})")
        return worklog.copy(id=remote_id, state=WorklogState.SYNCED, account_id=self.account_id)

    def update_worklog(self, worklog: Worklog) -> Worklog:
        self.request(
            "PUT",
            f"/issue/{worklog.issue.id}/worklog/{worklog.id}",
            json=self._worklog_payload(worklog),
        )
        logger.info(f"Updated worklog {worklog.id} on {worklog.issue.key}")
        return worklog.copy(state=WorklogState.SYNCED)

    def delete_worklog(self, worklog: Worklog):
        self.request("DELETE", f"/issue/{worklog.issue.id}/worklog/{worklog.id}")
        logger.info(f"Deleted worklog {worklog.id} on {worklog.issue.key}")


_clients: Dict[str, JiraClient] = {}


def register_client(client: JiraClient):
    _clients[client.account_id] = client


def unregister_client(account_id: str):
    _clients.pop(account_id, None)


def get_jira_client(account_id: str) -> JiraClient:
    """Return the Jira client for the given account id."""
    client = _clients.get(account_id)
    if client is None:
        raise NotLoggedInError(f"No Jira client for account {account_id}")
    return client
