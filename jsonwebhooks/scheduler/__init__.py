"""Scheduler module for periodic query runs."""

from .query_scheduler import QueryScheduler

__all__ = ["QueryScheduler"]
