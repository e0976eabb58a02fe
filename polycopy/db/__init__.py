"""Database module for polycopy."""

from .models import Base, UserActivity
from .database import Database, DEFAULT_DATABASE_URL
from .activities import ActivityStore

__all__ = [
    "Base",
    "UserActivity",
    "Database",
    "DEFAULT_DATABASE_URL",
    "ActivityStore",
]
