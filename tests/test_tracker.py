"""Tests for worklog editing, the merged view and the timer."""
from datetime import date, datetime

import pytest

from conftest import ACCOUNT_ID, make_worklog
from jira_time_tracker.models import Account, IssueRef, WorklogState
from jira_time_tracker.storage import StorageKey

ISSUE = IssueRef(id="10001", key="PROJ-7", summary="Write docs")


class TestMergedView:
    def test_local_changes_override_remote(self, tracker, remote_cache):
        remote_cache(
            make_worklog("1", "PROJ-1"),
            make_worklog("2", "PROJ-2"),
            make_worklog("3", "PROJ-3"),
        )
        tracker.update_worklog(make_worklog("1", "PROJ-1", seconds=7200))
        tracker.delete_worklog("2")
        added = tracker.add_worklog(ISSUE, "2024-03-05", ACCOUNT_ID, 600)

        view = {w.id: w for w in tracker.worklogs()}

        assert set(view) == {"1", "3", added.id}
        assert view["1"].time_spent_seconds == 7200
        assert view["1"].state == WorklogState.EDITED
        assert view["3"].state == WorklogState.SYNCED
        assert view[added.id].state == WorklogState.LOCAL

    def test_filters_by_day_and_week(self, tracker, remote_cache):
        remote_cache(
            make_worklog("1", started="2024-03-04"),
            make_worklog("2", started="2024-03-05"),
            make_worklog("3", started="2024-03-12"),
        )
        assert [w.id for w in tracker.worklogs_for_date("2024-03-05")] == ["2"]
        assert [w.id for w in tracker.worklogs_for_week(date(2024, 3, 6))] == ["1", "2"]


class TestEdits:
    def test_add_defaults_to_primary_account(self, tracker, logged_in):
        worklog = tracker.add_worklog(ISSUE, date(2024, 3, 5))
        assert worklog.account_id == ACCOUNT_ID
        assert worklog.started == "2024-03-05"
        assert worklog.id.startswith("local-")

    def test_updating_local_worklog_keeps_it_local(self, tracker):
        worklog = tracker.add_worklog(ISSUE, "2024-03-05", ACCOUNT_ID)
        updated = tracker.update_worklog(worklog.copy(comment="done"))
        assert updated.state == WorklogState.LOCAL
        assert len(tracker.local_worklogs()) == 1

    def test_updating_unknown_worklog_raises(self, tracker):
        with pytest.raises(KeyError):
            tracker.update_worklog(make_worklog("nope"))

    def test_deleting_local_worklog_drops_it(self, tracker):
        worklog = tracker.add_worklog(ISSUE, "2024-03-05", ACCOUNT_ID)
        tracker.delete_worklog(worklog.id)
        assert tracker.local_worklogs() == []

    def test_deleting_edited_worklog_marks_it_deleted(self, tracker, remote_cache):
        remote_cache(make_worklog("1"))
        tracker.update_worklog(make_worklog("1", seconds=60))
        tracker.delete_worklog("1")
        [change] = tracker.local_worklogs()
        assert change.state == WorklogState.DELETED
        assert tracker.worklogs() == []

    def test_deleting_unknown_worklog_raises(self, tracker):
        with pytest.raises(KeyError):
            tracker.delete_worklog("missing")


class TestTimer:
    def test_stop_books_elapsed_time(self, tracker, clock, remote_cache):
        remote_cache(make_worklog("1", seconds=600))
        tracker.start_timer("1")
        clock.advance(125)

        assert tracker.elapsed() == 125
        worklog = tracker.stop_timer()

        assert worklog.time_spent_seconds == 725
        assert worklog.state == WorklogState.EDITED
        assert tracker.active_timer() is None

    def test_starting_another_timer_stops_the_first(self, tracker, clock, remote_cache):
        remote_cache(make_worklog("1", seconds=0), make_worklog("2", "PROJ-2", seconds=0))
        tracker.start_timer("1")
        clock.advance(60)
        tracker.start_timer("2")
        clock.advance(30)
        tracker.stop_timer()

        view = {w.id: w.time_spent_seconds for w in tracker.worklogs()}
        assert view == {"1": 60, "2": 30}

    def test_start_unknown_worklog_raises(self, tracker):
        with pytest.raises(KeyError):
            tracker.start_timer("missing")

    def test_stop_without_timer(self, tracker):
        assert tracker.stop_timer() is None

    def test_track_creates_todays_worklog_and_runs(self, tracker, clock):
        worklog = tracker.track(ISSUE, ACCOUNT_ID)
        assert worklog.started == date.fromtimestamp(clock.now).isoformat()
        assert tracker.active_timer()["worklog_id"] == worklog.id

    def test_deleting_running_worklog_clears_timer(self, tracker):
        worklog = tracker.track(ISSUE, ACCOUNT_ID)
        tracker.delete_worklog(worklog.id)
        assert tracker.active_timer() is None


class TestWorkingTime:
    def test_tracked_seconds_include_running_timer(self, tracker, clock):
        today = date.fromtimestamp(clock.now)
        tracker.add_worklog(ISSUE, today, ACCOUNT_ID, 300)
        tracker.track(ISSUE, ACCOUNT_ID)
        clock.advance(100)
        assert tracker.tracked_seconds(today) == 400

    def test_only_primary_count_method(self, tracker, storage, logged_in):
        logged_in.upsert(Account(account_id="acc-2", name="Side", cloud_id="c2"))
        tracker.add_worklog(ISSUE, "2024-03-05", ACCOUNT_ID, 300)
        tracker.add_worklog(ISSUE, "2024-03-05", "acc-2", 200)
        assert tracker.tracked_seconds("2024-03-05") == 500

        settings = storage.get(StorageKey.SETTINGS)
        settings["working_time_count_method"] = "only_primary"
        storage.set(StorageKey.SETTINGS, settings)
        assert tracker.tracked_seconds("2024-03-05") == 300

    def test_week_summary_skips_idle_non_working_days(self, tracker):
        tracker.add_worklog(ISSUE, "2024-03-09", ACCOUNT_ID, 60)  # Saturday
        summary = tracker.week_summary("2024-03-05")
        assert [d.isoformat() for d, _ in summary] == [
            "2024-03-04", "2024-03-05", "2024-03-06", "2024-03-07", "2024-03-08", "2024-03-09",
        ]
        assert summary[-1][1] == 60

    def test_is_other_day(self, tracker, clock):
        assert not tracker.is_other_day(date.fromtimestamp(clock.now))
        assert tracker.is_other_day("2000-01-01")


class TestTrackingReminder:
    def _enable(self, storage):
        settings = storage.get(StorageKey.SETTINGS)
        settings["enable_tracking_reminder"] = True
        storage.set(StorageKey.SETTINGS, settings)

    def test_disabled_by_default(self, tracker):
        assert not tracker.tracking_reminder_due(datetime(2024, 3, 5, 19, 0))

    def test_due_after_reminder_time_without_tracking(self, tracker, storage):
        self._enable(storage)
        assert not tracker.tracking_reminder_due(datetime(2024, 3, 5, 18, 29))
        assert tracker.tracking_reminder_due(datetime(2024, 3, 5, 18, 30))

    def test_not_due_on_weekends_or_when_tracked(self, tracker, storage):
        self._enable(storage)
        assert not tracker.tracking_reminder_due(datetime(2024, 3, 9, 19, 0))
        tracker.add_worklog(ISSUE, "2024-03-05", ACCOUNT_ID, 60)
        assert not tracker.tracking_reminder_due(datetime(2024, 3, 5, 19, 0))
