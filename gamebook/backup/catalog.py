"""
Version catalog for backup snapshots.

Records the physical form (compressed or not) of every snapshot so restore
can resolve a version with a single indexed lookup instead of probing both
file layouts. The catalog is an index only: snapshot files remain the
source of truth and versions missing from it are still restorable.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import create_engine, Column, String, Boolean, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class CatalogEntry(Base):
    """One registered snapshot"""
    __tablename__ = 'snapshots'

    version = Column(String(100), primary_key=True)
    timestamp = Column(String(40), nullable=False)
    compressed = Column(Boolean, default=False, nullable=False)
    registered_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f'<CatalogEntry {self.version} compressed={self.compressed}>'


class SnapshotCatalog:
    """
    SQLite backed index of snapshot versions.

    All methods are blocking; SnapshotStore calls them from a worker thread.
    """

    def __init__(self, db_path: str):
        """
        Initialize the catalog.

        Args:
            db_path: Path of the SQLite database file (created on first use)
        """
        self.db_path = str(db_path)
        self.engine = create_engine(
            f'sqlite:///{self.db_path}',
            connect_args={'check_same_thread': False}
        )
        self._session_factory = sessionmaker(bind=self.engine)
        self._schema_ready = False

    def _session(self):
        if not self._schema_ready:
            Base.metadata.create_all(self.engine)
            self._schema_ready = True
        return self._session_factory()

    def register(self, version: str, timestamp: str, compressed: bool):
        """Add or replace the entry for a version."""
        with self._session() as session:
            session.merge(CatalogEntry(version=version, timestamp=timestamp, compressed=compressed))
            session.commit()

    def unregister(self, version: str):
        """Remove a version. Unknown versions are ignored."""
        with self._session() as session:
            entry = session.get(CatalogEntry, version)
            if entry:
                session.delete(entry)
                session.commit()

    def lookup(self, version: str) -> Optional[bool]:
        """
        Get the physical form of a version.

        Returns:
            True if compressed, False if inline JSON, None if not registered
        """
        with self._session() as session:
            entry = session.get(CatalogEntry, version)
            return entry.compressed if entry else None

    def close(self):
        """Release pooled database connections."""
        self.engine.dispose()
