"""Scheduler module for recurring refresh runs.

This module provides the RefreshScheduler that triggers the refresh
coordinators on a cron recurrence, and the refresh task that runs every
family once.
"""

from refresher.scheduler.refresh_scheduler import RefreshScheduler
from refresher.scheduler.refresh_task import any_failed, refresh_all_families

__all__ = ["RefreshScheduler", "any_failed", "refresh_all_families"]
