import sys

from jira_time_tracker.cli import main

sys.exit(main())
