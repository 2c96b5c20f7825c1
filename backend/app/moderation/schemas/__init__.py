"""Pydantic schemas for the moderation API."""
