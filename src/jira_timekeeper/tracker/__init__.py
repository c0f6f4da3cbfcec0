"""Jira API access: transport, cached client and refresh scheduler."""

from jira_timekeeper.tracker.client import CacheTTLs, TrackerClient
from jira_timekeeper.tracker.scheduler import RefreshScheduler
from jira_timekeeper.tracker.transport import HTTPTransport, Transport

__all__ = ["CacheTTLs", "HTTPTransport", "RefreshScheduler", "TrackerClient", "Transport"]
