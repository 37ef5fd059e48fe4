#!/usr/bin/env python3
"""
Jira Time Tracker Sync Service

Background service that:
- Pushes local worklog changes to Jira and refreshes remote worklogs
- Reminds the user when nothing has been tracked by the reminder time

Usage:
    jira-time-tracker service
    python3 -m jira_time_tracker.sync_service
"""

import logging
import signal
import sys
import time
from datetime import date, datetime
from typing import Callable, Optional

from jira_time_tracker import config
from jira_time_tracker.app import TimeTrackerApp
from jira_time_tracker.errors import TimeTrackerError

logger = logging.getLogger(__name__)


def log_reminder(message: str):
    logger.warning(message)


class SyncService:
    """Main sync service."""

    def __init__(self, app: TimeTrackerApp, sync_interval: float = 300,
                 reminder_interval: float = 60,
                 notify: Callable[[str], None] = log_reminder,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep):
        self.app = app
        self.sync_interval = sync_interval
        self.reminder_interval = reminder_interval
        self.notify = notify
        self.clock = clock
        self.sleep = sleep
        self.running = False
        self._last_sync = 0.0
        self._last_reminder_check = 0.0
        self._reminded_on: Optional[date] = None

    def sync_once(self):
        try:
            # Picks up accounts that logged in since the last sync
            self.app.connect()
            result = self.app.sync.sync_all()
        except TimeTrackerError as e:
            logger.error(f"Sync failed: {e}")
            return None
        if result.ok:
            logger.info(f"Sync complete: {result.summary()}")
        else:
            logger.warning(f"Sync finished with errors: {result.summary()}")
        return result

    def check_reminder(self):
        now = datetime.fromtimestamp(self.clock())
        if self._reminded_on == now.date():
            return
        if self.app.tracker.tracking_reminder_due(now):
            self._reminded_on = now.date()
            self.notify("You have not tracked any time today.")

    def tick(self):
        """One iteration of the loop: sync and check the reminder when due."""
        now = self.clock()
        if now - self._last_sync >= self.sync_interval:
            self.sync_once()
            self._last_sync = now
        if now - self._last_reminder_check >= self.reminder_interval:
            self.check_reminder()
            self._last_reminder_check = now

    def run(self):
        """Main service loop."""
        logger.info("Jira Time Tracker sync service started")
        self.running = True

        while self.running:
            try:
                self.tick()
                self.sleep(1.0)
            except KeyboardInterrupt:
                logger.info("Shutting down...")
                self.running = False
            except Exception as e:
                logger.error(f"Error in main loop: {e}")
                self.sleep(5.0)

        logger.info("Jira Time Tracker sync service stopped")

    def stop(self, *args):
        """Stop the service."""
        self.running = False


def main(verbose: bool = False) -> int:
    """Entry point."""
    config.setup_logging("sync", verbose=verbose)
    logger.info("=" * 50)
    logger.info("Jira Time Tracker Sync Service")
    logger.info("=" * 50)

    settings = config.load_config()
    app = TimeTrackerApp()
    app.record_version()
    try:
        if not app.connect():
            logger.warning("No Jira account is logged in, only reminders are active")
    except TimeTrackerError as e:
        logger.error(str(e))
        return 1

    service = SyncService(
        app,
        sync_interval=float(settings.get("sync_interval", 300)),
        reminder_interval=float(settings.get("reminder_check_interval", 60)),
    )
    signal.signal(signal.SIGTERM, service.stop)
    try:
        service.run()
    except KeyboardInterrupt:
        service.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
