"""Cadence: activity recurrence and calendar-scheduling engine."""

__version__ = "0.1.0"
