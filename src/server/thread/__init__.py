"""Thread management package providing SQLite-backed persistence and APIs."""

from .store import SQLiteThreadStore

__all__ = ["SQLiteThreadStore"]
