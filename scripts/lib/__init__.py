"""Shared helpers for the latest_news maintenance jobs."""
