"""Recruit Scheduler - coffee chat slots and interview evaluations for a recruiting backend."""

__version__ = "0.1.0"
