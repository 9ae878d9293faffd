"""Ride booking payment and reconciliation service."""

__version__ = "0.1.0"
