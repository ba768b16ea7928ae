"""
Background Jobs for Review Gateway.

This module contains scheduled and background jobs:
- followup_cron: retries failed document generation and notifications,
  persists lapsed review token expiry
"""

from .followup_cron import process_followups, run_followup_job

__all__ = ["process_followups", "run_followup_job"]
