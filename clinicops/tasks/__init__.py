"""Scheduled background tasks."""
