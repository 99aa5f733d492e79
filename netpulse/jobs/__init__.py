"""Periodic job scheduling."""

from .scheduler import JobScheduler, ScheduledJob
