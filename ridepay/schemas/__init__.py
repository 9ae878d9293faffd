"""Pydantic request, response and webhook schemas."""
