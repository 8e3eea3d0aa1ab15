"""MoodVault: backup, export and restore engine for personal mood tracking data."""

__version__ = "0.4.0"
