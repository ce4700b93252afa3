"""
Background Jobs for Channel Bridge.

This module contains scheduled and background jobs:
- cleanup: hourly eviction of stale pairing codes
"""

from .cleanup import CleanupScheduler, run_cleanup_job

__all__ = ["CleanupScheduler", "run_cleanup_job"]
