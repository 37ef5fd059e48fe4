"""Command line interface for the Jira Time Tracker."""

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

import requests

from jira_time_tracker import __version__, config, dates, sync_service
from jira_time_tracker.app import TimeTrackerApp
from jira_time_tracker.durations import format_jira_duration, parse_user_duration, pretty_duration
from jira_time_tracker.errors import NotLoggedInError, TimeTrackerError
from jira_time_tracker.models import IssueRef, Worklog
from jira_time_tracker.storage import DEFAULT_SETTINGS, WORKING_TIME_COUNT_METHODS, StorageKey

logger = logging.getLogger(__name__)

STATE_MARKERS = {"synced": " ", "edited": "*", "local": "+", "deleted": "-"}


def _duration_arg(value: str) -> int:
    seconds = parse_user_duration(value)
    if seconds is None:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r} (e.g. 30, 1h, 1h30m, 1.5h)")
    return seconds


def _date_arg(value: str) -> date:
    if value == "today":
        return date.today()
    try:
        return dates.parse_date(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD)")


def _resolve_worklog(app: TimeTrackerApp, prefix: str) -> Worklog:
    matches = [w for w in app.tracker.worklogs() if w.id == prefix]
    if not matches:
        matches = [w for w in app.tracker.worklogs() if w.id.startswith(prefix)]
    if not matches:
        raise TimeTrackerError(f"No worklog matches {prefix!r}")
    if len(matches) > 1:
        raise TimeTrackerError(f"{prefix!r} matches {len(matches)} worklogs, use a longer id")
    return matches[0]


def _resolve_account_id(app: TimeTrackerApp, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    for account in app.accounts.accounts():
        if value in (account.account_id, account.email, account.name):
            return account.account_id
    raise NotLoggedInError(f"No logged-in account matches {value!r}")


def _resolve_issue(app: TimeTrackerApp, key: str, account_id: Optional[str]) -> IssueRef:
    key = key.upper()
    try:
        app.connect()
        for issue in app.client(account_id).search_issues(key):
            if issue.key == key:
                return issue
    except (TimeTrackerError, requests.RequestException) as e:
        logger.info(f"Could not look up {key} in Jira, storing it offline: {e}")
        # Jira accepts the issue key wherever it accepts the id
        return IssueRef(id=key, key=key)
    raise TimeTrackerError(f"Issue {key} not found")


def _confirm_other_day(app: TimeTrackerApp, day, assume_yes: bool) -> bool:
    settings = app.tracker.settings()
    if assume_yes or not settings["warning_when_editing_other_days"] or not app.tracker.is_other_day(day):
        return True
    answer = input(f"{dates.format_date(dates.as_date(day))} is not today. Continue? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _print_worklogs(app: TimeTrackerApp, worklogs: List[Worklog]):
    timer = app.tracker.active_timer()
    if not worklogs:
        print("No worklogs.")
        return
    for w in worklogs:
        seconds = w.time_spent_seconds
        running = ""
        if timer and timer["worklog_id"] == w.id:
            seconds += app.tracker.elapsed()
            running = "  [running]"
        marker = STATE_MARKERS[w.state.value]
        comment = f"  {w.comment}" if w.comment else ""
        print(f"{marker} {w.id[:14]:<14} {w.started}  {pretty_duration(seconds)}  "
              f"{w.issue.key:<10} {w.issue.summary[:40]}{comment}{running}")


# ── commands ─────────────────────────────────────────────────────────


def cmd_login(app: TimeTrackerApp, args) -> int:
    account = app.login(timeout=args.timeout)
    print(f"Logged in as {account.name} ({account.workspace_name})")
    return 0


def cmd_logout(app: TimeTrackerApp, args) -> int:
    account_id = _resolve_account_id(app, args.account)
    app.logout(account_id)
    print("Logged out")
    return 0


def cmd_accounts(app: TimeTrackerApp, args) -> int:
    if args.primary:
        app.accounts.set_primary(_resolve_account_id(app, args.primary))
    accounts = app.accounts.accounts()
    if not accounts:
        print("No accounts. Run 'jira-time-tracker login'.")
    for account in accounts:
        primary = "*" if account.is_primary else " "
        session = "" if app.accounts.tokens(account.account_id) else "  (session expired)"
        print(f"{primary} {account.name:<24} {account.email:<30} {account.workspace_name}{session}")
    return 0


def cmd_search(app: TimeTrackerApp, args) -> int:
    app.connect()
    issues = app.client(_resolve_account_id(app, args.account)).search_issues(" ".join(args.query))
    for issue in issues:
        print(f"{issue.key:<12} {issue.summary}")
    if not issues:
        print("No issues found.")
    return 0


def cmd_add(app: TimeTrackerApp, args) -> int:
    if not _confirm_other_day(app, args.date, args.yes):
        return 1
    account_id = _resolve_account_id(app, args.account)
    issue = _resolve_issue(app, args.issue, account_id)
    worklog = app.tracker.add_worklog(issue, args.date, account_id, args.duration or 0, args.comment or "")
    print(f"Added {worklog.id} ({issue.key}, {format_jira_duration(worklog.time_spent_seconds)})")
    return 0


def cmd_track(app: TimeTrackerApp, args) -> int:
    account_id = _resolve_account_id(app, args.account)
    issue = _resolve_issue(app, args.issue, account_id)
    worklog = app.tracker.track(issue, account_id, args.comment or "")
    print(f"Tracking {issue.key} ({worklog.id})")
    return 0


def cmd_edit(app: TimeTrackerApp, args) -> int:
    worklog = _resolve_worklog(app, args.worklog)
    if not _confirm_other_day(app, args.date or worklog.started, args.yes):
        return 1
    changes = {}
    if args.duration is not None:
        changes["time_spent_seconds"] = args.duration
    if args.date is not None:
        changes["started"] = dates.format_date(args.date)
    if args.comment is not None:
        changes["comment"] = args.comment
    if not changes:
        print("Nothing to change.")
        return 0
    updated = app.tracker.update_worklog(worklog.copy(**changes))
    print(f"Updated {updated.id} ({updated.state.value})")
    return 0


def cmd_delete(app: TimeTrackerApp, args) -> int:
    worklog = _resolve_worklog(app, args.worklog)
    if not _confirm_other_day(app, worklog.started, args.yes):
        return 1
    app.tracker.delete_worklog(worklog.id)
    print(f"Deleted {worklog.id}")
    return 0


def cmd_start(app: TimeTrackerApp, args) -> int:
    worklog = _resolve_worklog(app, args.worklog)
    app.tracker.start_timer(worklog.id)
    print(f"Started {worklog.issue.key}")
    return 0


def cmd_stop(app: TimeTrackerApp, args) -> int:
    worklog = app.tracker.stop_timer()
    if worklog is None:
        print("No timer running.")
        return 0
    print(f"Stopped {worklog.issue.key}: {pretty_duration(worklog.time_spent_seconds)}")
    return 0


def cmd_status(app: TimeTrackerApp, args) -> int:
    timer = app.tracker.active_timer()
    if timer:
        worklog = app.tracker.get_worklog(timer["worklog_id"])
        key = worklog.issue.key if worklog else timer["worklog_id"]
        print(f"Tracking {key} for {pretty_duration(app.tracker.elapsed())}")
    else:
        print("No timer running.")
    print(f"Today: {pretty_duration(app.tracker.tracked_seconds(date.today()))}")
    return 0


def cmd_list(app: TimeTrackerApp, args) -> int:
    day = args.date
    if args.week:
        print(f"Week {dates.iso_week(day)}")
        _print_worklogs(app, app.tracker.worklogs_for_week(day))
        print()
        for d, seconds in app.tracker.week_summary(day):
            print(f"  {d:%a %Y-%m-%d}  {pretty_duration(seconds)}")
    else:
        _print_worklogs(app, app.tracker.worklogs_for_date(day))
        print(f"Total: {pretty_duration(app.tracker.tracked_seconds(day))}")
    return 0


def cmd_sync(app: TimeTrackerApp, args) -> int:
    if not app.connect():
        raise NotLoggedInError("Not logged in to Jira")
    result = app.sync.sync_all()
    print(f"Sync: {result.summary()}")
    for error in result.errors:
        print(f"  {error}")
    return 0 if result.ok else 1


def _parse_setting(key: str, raw: str):
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    default = DEFAULT_SETTINGS[key]
    numeric = (int, float)
    if (isinstance(default, numeric) and isinstance(value, numeric)
            and not isinstance(default, bool) and not isinstance(value, bool)):
        return value
    if type(value) is not type(default):
        raise TimeTrackerError(f"{key} expects {type(default).__name__}, got {raw!r}")
    if key == "working_time_count_method" and value not in WORKING_TIME_COUNT_METHODS:
        raise TimeTrackerError(f"{key} must be one of {', '.join(WORKING_TIME_COUNT_METHODS)}")
    return value


def cmd_settings(app: TimeTrackerApp, args) -> int:
    settings = app.storage.get(StorageKey.SETTINGS)
    if args.key is None:
        for key, value in settings.items():
            print(f"{key} = {json.dumps(value)}")
        return 0
    if args.key not in settings:
        raise TimeTrackerError(f"Unknown setting {args.key!r}")
    if args.value is not None:
        settings[args.key] = _parse_setting(args.key, args.value)
        app.storage.set(StorageKey.SETTINGS, settings)
    print(f"{args.key} = {json.dumps(settings[args.key])}")
    return 0


def cmd_service(app: TimeTrackerApp, args) -> int:
    return sync_service.main(verbose=args.verbose)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jira-time-tracker",
        description="Track time against Jira issues and sync worklogs with Jira Cloud.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="log in to a Jira Cloud account")
    p.add_argument("--timeout", type=float, default=300, help="seconds to wait for the browser")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("logout", help="forget an account and its worklogs")
    p.add_argument("account", help="account id, email or name")
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser("accounts", help="list logged-in accounts")
    p.add_argument("--primary", help="make this account the primary one")
    p.set_defaults(func=cmd_accounts)

    p = sub.add_parser("search", help="search Jira issues")
    p.add_argument("query", nargs="+")
    p.add_argument("--account")
    p.set_defaults(func=cmd_search)

    for name, func, help_text in (
        ("add", cmd_add, "add a worklog"),
        ("track", cmd_track, "add a worklog for today and start its timer"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("issue", help="issue key, e.g. PROJ-123")
        p.add_argument("-c", "--comment")
        p.add_argument("--account")
        if name == "add":
            p.add_argument("-d", "--duration", type=_duration_arg)
            p.add_argument("--date", type=_date_arg, default=date.today())
            p.add_argument("-y", "--yes", action="store_true")
        p.set_defaults(func=func)

    p = sub.add_parser("edit", help="edit a worklog")
    p.add_argument("worklog", help="worklog id or unique prefix")
    p.add_argument("-d", "--duration", type=_duration_arg)
    p.add_argument("--date", type=_date_arg)
    p.add_argument("-c", "--comment")
    p.add_argument("-y", "--yes", action="store_true")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("delete", help="delete a worklog")
    p.add_argument("worklog")
    p.add_argument("-y", "--yes", action="store_true")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("start", help="start the timer on a worklog")
    p.add_argument("worklog")
    p.set_defaults(func=cmd_start)

    p = sub.add_parser("stop", help="stop the running timer")
    p.set_defaults(func=cmd_stop)

    p = sub.add_parser("status", help="show the running timer")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("list", help="list worklogs of a day or week")
    p.add_argument("--date", type=_date_arg, default=date.today())
    p.add_argument("--week", action="store_true")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("sync", help="sync worklogs with Jira")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("settings", help="show or change settings")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?", help="JSON value")
    p.set_defaults(func=cmd_settings)

    p = sub.add_parser("service", help="run the background sync service")
    p.set_defaults(func=cmd_service)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "service":
        return cmd_service(None, args)

    config.setup_logging("cli", verbose=args.verbose, console_level=logging.WARNING)
    app = TimeTrackerApp()
    app.record_version()
    try:
        return args.func(app, args)
    except TimeTrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyError as e:
        print(f"Error: {e.args[0] if e.args else e}", file=sys.stderr)
        return 1
    except requests.RequestException as e:
        print(f"Error: could not reach Jira: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
