"""Jira Timekeeper - cached worklog sync and monthly statistics for Jira."""

__version__ = "0.1.0"
