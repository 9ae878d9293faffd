"""Core configuration, enums, exceptions and locking helpers."""
