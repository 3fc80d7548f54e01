"""
Backup module for the gamebook editor.

This module handles project snapshots:
- Checksums and compression of serialized projects
- Snapshot storage in the local backup directory
- Daily/weekly/monthly retention categorization and cleanup
- Orchestration (create, list, restore, export, import)
"""

from .manager import (
    BackupManager,
    CleanupSummary,
    BackupError,
    BackupNotFoundError,
    BackupIntegrityError,
    BackupFormatError
)
from .models import SnapshotMetadata, RetentionSettings, RetentionPeriod
from .retention import classify, plan_cleanup
from .storage import SnapshotStore, StorageError

__all__ = [
    'BackupManager',
    'CleanupSummary',
    'BackupError',
    'BackupNotFoundError',
    'BackupIntegrityError',
    'BackupFormatError',
    'SnapshotMetadata',
    'RetentionSettings',
    'RetentionPeriod',
    'classify',
    'plan_cleanup',
    'SnapshotStore',
    'StorageError'
]
