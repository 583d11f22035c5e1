"""Pydantic schemas exposed by the HTTP API."""
