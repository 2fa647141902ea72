"""Taskboard: tasks, friends and a leaderboard with live completion events."""

__version__ = "1.0.0"
