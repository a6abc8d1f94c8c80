"""Pydantic and SQLAlchemy models for BlockNotes."""
