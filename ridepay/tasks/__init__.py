"""Celery application, beat schedule and reconciliation tasks."""
