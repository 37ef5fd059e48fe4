"""
Jira Time Tracker

Tracks time against Jira issues locally and syncs the resulting worklogs
with Jira Cloud over OAuth 2.0.
"""

__version__ = "0.1.0"
