"""
Database manager for adventure snapshots.

This module provides a high-level interface for storing and loading
serialized adventure state, with rotation of old snapshots.
"""

import os
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, desc
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker

from adventure.db.schema import AdventureSnapshot, Base
from adventure.utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """
    Manages database operations for adventure snapshots.

    Attributes:
        db_path: Path to the SQLite database file
        max_save_files: Number of snapshots kept per adventure
        engine: SQLAlchemy engine for database connections
        SessionLocal: Factory for creating database sessions
    """

    def __init__(self, db_path: str = "data/adventure.db", max_save_files: int = 4):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file (created if doesn't exist)
            max_save_files: Snapshots kept per adventure, the newest first
        """
        self.db_path = db_path
        self.max_save_files = max_save_files

        # Ensure data directory exists
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        logger.info(f"Database initialized at {db_path}")

    def save_snapshot(self, adventure_id: str, state: str, turn_count: int) -> int:
        """
        Save a snapshot and delete the ones beyond ``max_save_files``.

        Returns:
            Row id of the new snapshot
        """
        db: DBSession = self.SessionLocal()
        try:
            snapshot = AdventureSnapshot(
                adventure_id=adventure_id, state=state, turn_count=turn_count
            )
            db.add(snapshot)
            db.flush()
            snapshot_id = snapshot.id

            stale = (
                db.query(AdventureSnapshot)
                .filter(AdventureSnapshot.adventure_id == adventure_id)
                .order_by(desc(AdventureSnapshot.id))
                .offset(self.max_save_files)
                .all()
            )
            for row in stale:
                db.delete(row)

            db.commit()
            logger.debug(
                f"Saved snapshot {snapshot_id} of adventure {adventure_id} "
                f"({turn_count} turns, {len(stale)} rotated out)"
            )
            return snapshot_id
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to save snapshot of adventure {adventure_id}: {e}")
            raise
        finally:
            db.close()

    def load_latest_snapshot(self, adventure_id: str) -> Optional[str]:
        """Return the newest snapshot state of an adventure, or None"""
        db: DBSession = self.SessionLocal()
        try:
            snapshot = (
                db.query(AdventureSnapshot)
                .filter(AdventureSnapshot.adventure_id == adventure_id)
                .order_by(desc(AdventureSnapshot.id))
                .first()
            )
            return snapshot.state if snapshot else None
        finally:
            db.close()

    def list_snapshots(self, adventure_id: str) -> List[Dict[str, Any]]:
        """Snapshot metadata of an adventure, newest first"""
        db: DBSession = self.SessionLocal()
        try:
            snapshots = (
                db.query(AdventureSnapshot)
                .filter(AdventureSnapshot.adventure_id == adventure_id)
                .order_by(desc(AdventureSnapshot.id))
                .all()
            )
            return [
                {
                    "id": snapshot.id,
                    "adventure_id": snapshot.adventure_id,
                    "turn_count": snapshot.turn_count,
                    "created_at": (
                        snapshot.created_at.isoformat() if snapshot.created_at else None
                    ),
                }
                for snapshot in snapshots
            ]
        finally:
            db.close()


class AdventureStorage:
    """Durable storage of one adventure's serialized state"""

    def __init__(self, db: DatabaseManager, adventure_id: str):
        self.db = db
        self.adventure_id = adventure_id

    def save(self, data: bytes, turn_count: int = 0) -> None:
        self.db.save_snapshot(self.adventure_id, data.decode("utf-8"), turn_count)

    def load(self) -> Optional[bytes]:
        state = self.db.load_latest_snapshot(self.adventure_id)
        return state.encode("utf-8") if state is not None else None
