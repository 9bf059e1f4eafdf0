"""Shared pydantic models and enums."""
