"""Command-line interface for Jira Timekeeper."""
