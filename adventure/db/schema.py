"""
Database schema definitions using SQLAlchemy.

Adventure snapshots are stored in a single SQLite database file. Every
successful turn adds a row; older rows of the same adventure are rotated out.
"""

# mypy: ignore-errors

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()  # type: ignore


class AdventureSnapshot(Base):
    """
    Serialized session state of an adventure after a committed turn.

    Attributes:
        id: Auto-incremented row id, increasing with save order
        adventure_id: Adventure the snapshot belongs to
        state: Session state as JSON text
        turn_count: Number of turns in the snapshot
        created_at: Timestamp when the snapshot was saved
    """

    __tablename__ = "adventure_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    adventure_id = Column(String, nullable=False, index=True)
    state = Column(Text, nullable=False)
    turn_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
