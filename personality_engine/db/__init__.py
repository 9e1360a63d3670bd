"""
Database module for the Personality Engine.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from personality_engine.db.database import (
    AsyncSessionLocal,
    Base,
    close_db,
    get_db,
    init_db,
)
from personality_engine.db.models import Conversation, Message

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "Conversation",
    "Message",
    "close_db",
    "get_db",
    "init_db",
]
