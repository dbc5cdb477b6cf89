"""
Logged CRUD helpers for SQLAlchemy models so the schema services can avoid
repeating ORM boilerplate.
"""

from .base import create_instance, get_instance, update_instance

__all__ = ["create_instance", "get_instance", "update_instance"]
