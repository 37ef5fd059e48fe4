"""Exceptions raised by the Jira Time Tracker."""

from typing import Optional


class TimeTrackerError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(TimeTrackerError):
    """OAuth app credentials or other settings are missing."""


class JiraApiError(TimeTrackerError):
    """A Jira REST call returned a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OAuthError(TimeTrackerError):
    """The Atlassian token endpoint rejected a request."""


class SessionExpiredError(TimeTrackerError):
    """The refresh token is no longer valid; the user has to log in again."""

    def __init__(self, account_id: str):
        super().__init__(f"Session for account {account_id} has expired, please log in again")
        self.account_id = account_id


class TooManyRequestsError(TimeTrackerError):
    """A paginated fetch did not terminate within the page limit."""


class NotLoggedInError(TimeTrackerError):
    """No Jira client is registered for the requested account."""
