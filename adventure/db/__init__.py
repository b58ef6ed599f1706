"""
Database package for the adventure engine.

This package provides SQLite-based persistence for adventure snapshots.
"""

from .manager import AdventureStorage, DatabaseManager

__all__ = ['AdventureStorage', 'DatabaseManager']
