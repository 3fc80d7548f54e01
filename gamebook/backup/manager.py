"""
Backup manager - public entry point of the backup engine.

Workflow of a backup:
1. Serialize the project list to compact JSON
2. Checksum the serialized payload
3. Compress it (if enabled in the retention settings)
4. Categorize it and derive its version from the current instant
5. Persist it through SnapshotStore
6. Run a cleanup pass (if auto cleanup is enabled)

One manager should be used per data directory; calls are not serialized.
"""

import asyncio
import copy
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable, Union, Tuple

from .checksum import generate_checksum
from .compression import compress_data, decompress_data, CompressionError
from .models import (
    SnapshotMetadata, RetentionSettings,
    dumps_json, format_timestamp, version_for_timestamp
)
from .retention import classify, plan_cleanup
from .storage import SnapshotStore, StorageError


BACKUP_DIR = 'backups'
SETTINGS_FILE = 'backup-settings.json'
DEFAULT_AUTO_BACKUP_MINUTES = 5

_VERSION_PATTERN = re.compile(r'^backup_[0-9A-Za-z\-]+$')


class BackupError(Exception):
    """Base class for backup failures surfaced to callers."""
    pass


class BackupNotFoundError(BackupError):
    """Raised when no readable snapshot exists for a version."""
    pass


class BackupIntegrityError(BackupError):
    """Raised when a snapshot's payload does not match its checksum."""
    pass


class BackupFormatError(BackupError):
    """Raised when a payload or import document has the wrong shape."""
    pass


@dataclass
class CleanupSummary:
    """Outcome of a cleanup pass."""

    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_projects(projects: List[Any]) -> str:
    """
    Serialize a project list to its canonical compact JSON form.

    Raises:
        BackupFormatError: If projects is not a list or not JSON serializable
    """
    if not isinstance(projects, (list, tuple)):
        raise BackupFormatError("Projects must be a list")
    try:
        return dumps_json(list(projects), separators=(',', ':'))
    except (TypeError, ValueError) as e:
        raise BackupFormatError(f"Projects are not JSON serializable: {e}")


class BackupManager:
    """
    Creates, lists, restores and prunes project snapshots.

    Example:
        manager = BackupManager('/path/to/data')
        await manager.initialize()
        metadata = await manager.create_backup(projects)
        projects = await manager.restore_backup(metadata.version)
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        settings: Optional[RetentionSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger=None
    ):
        """
        Initialize backup manager.

        Args:
            data_dir: Directory holding the settings file and the backups folder
            settings: Initial settings (default: RetentionSettings defaults);
                replaced by the stored settings when load_settings() succeeds
            clock: Callable returning the current instant (default: UTC wall clock)
            logger: Logger with info/warning/error methods (default: module logger)
        """
        self.data_dir = Path(data_dir)
        self.store = SnapshotStore(self.data_dir / BACKUP_DIR, self.data_dir / SETTINGS_FILE)
        self.settings = copy.deepcopy(settings) if settings else RetentionSettings()
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock or _utc_now
        self._current_date = None
        self._auto_backup = None

    # Clock

    def now(self) -> datetime:
        """Current instant: the override from set_current_date(), else the clock."""
        moment = self._current_date or self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    def set_current_date(self, date: Optional[datetime]):
        """
        Override the instant used for categorization and version naming.

        Args:
            date: Instant to use, or None to return to the clock
        """
        if date is not None and date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        self._current_date = date

    # Settings

    async def initialize(self):
        """Create the backup directory and load stored settings."""
        try:
            await self.store.ensure_directory()
        except StorageError as e:
            self.logger.error(f"Backup directory unavailable: {e}")
        await self.load_settings()

    async def load_settings(self):
        """
        Load settings from disk.

        A missing or malformed settings file keeps the current settings.
        """
        try:
            raw = await self.store.read_settings()
        except StorageError as e:
            self.logger.warning(f"Failed to read backup settings, keeping current settings: {e}")
            return

        if raw is None:
            self.logger.info(f"No stored backup settings, using: {self.settings.to_dict()}")
            return

        try:
            self.settings = RetentionSettings.from_dict(raw)
        except ValueError as e:
            self.logger.warning(f"Invalid backup settings file, keeping current settings: {e}")
            return

        self.logger.info(f"Loaded backup settings: {self.settings.to_dict()}")

    async def get_settings(self) -> RetentionSettings:
        """Get a copy of the current retention settings."""
        return copy.deepcopy(self.settings)

    async def update_settings(self, new_settings: Union[RetentionSettings, Dict[str, Any]]):
        """
        Replace the retention settings.

        Fields missing from new_settings take their DEFAULT values, not the
        previously stored ones. Runs a cleanup pass if auto cleanup is on.

        Args:
            new_settings: RetentionSettings or a (partial) camelCase dict

        Raises:
            ValueError: If new_settings has invalid field types
            StorageError: If the settings file cannot be written
        """
        if isinstance(new_settings, RetentionSettings):
            new_settings = new_settings.to_dict()

        settings = RetentionSettings.from_dict(new_settings, partial=True)
        self.logger.info(f"Updating backup settings from {self.settings.to_dict()} to {settings.to_dict()}")

        self.settings = settings
        await self.store.write_settings(settings.to_dict())

        if self.settings.auto_cleanup:
            await self.run_cleanup()

    # Snapshots

    async def create_backup(self, projects: List[Any]) -> SnapshotMetadata:
        """
        Snapshot a project list.

        Args:
            projects: JSON serializable list of project records

        Returns:
            Metadata of the created snapshot

        Raises:
            BackupFormatError: If projects is not a serializable list
            StorageError: If the snapshot cannot be written
        """
        serialized = serialize_projects(projects)
        checksum = generate_checksum(serialized)

        now = self.now()
        timestamp = format_timestamp(now)
        version = version_for_timestamp(timestamp)
        category = classify(timestamp, now)

        metadata = SnapshotMetadata(
            version=version,
            timestamp=timestamp,
            checksum=checksum,
            size=len(serialized.encode('utf-8')),
            retention_category=category
        )

        if self.settings.compression:
            payload = await compress_data(serialized)
            metadata.compressed = True
            metadata.compressed_size = len(payload)
        else:
            payload = list(projects)

        await self.store.write_snapshot(metadata, payload)
        self.logger.info(
            f"Created backup {version} (category: {category}, size: {metadata.size}, "
            f"compressed: {metadata.compressed})"
        )

        if self.settings.auto_cleanup:
            await self.run_cleanup()

        return metadata

    async def list_backups(self) -> List[SnapshotMetadata]:
        """
        List all readable snapshots, newest first.

        Retention categories are recomputed against now(). Unreadable
        snapshots are logged and skipped.
        """
        try:
            entries = await self.store.list_versions()
        except StorageError as e:
            self.logger.error(f"Failed to list backups: {e}")
            return []

        now = self.now()
        backups = []

        for version, compressed in entries:
            try:
                metadata = await self.store.read_metadata(version, compressed)
            except StorageError as e:
                self.logger.error(f"Failed to read backup {version}: {e}")
                continue

            if metadata is None:
                self.logger.error(f"Backup {version} has no metadata record, skipping")
                continue

            metadata.compressed = compressed
            metadata.retention_category = classify(metadata.timestamp, now)
            backups.append(metadata)

        return backups

    async def _locate(self, version: str) -> Tuple[SnapshotMetadata, Union[bytes, List[Any]], bool]:
        if not isinstance(version, str) or not _VERSION_PATTERN.match(version):
            raise BackupNotFoundError(f"Backup {version} not found")

        known_form = await self.store.lookup_form(version)
        forms = [True, False]
        if known_form is not None:
            forms.remove(known_form)
            forms.insert(0, known_form)

        for compressed in forms:
            try:
                metadata = await self.store.read_metadata(version, compressed)
                if metadata is None:
                    continue
                payload = await self.store.read_payload(version, compressed)
            except StorageError as e:
                self.logger.warning(f"Unreadable {'compressed' if compressed else 'uncompressed'} backup {version}: {e}")
                continue

            if payload is None:
                if compressed:
                    self.logger.warning(f"Compressed backup {version} has no data file")
                    continue
                raise BackupIntegrityError(f"Invalid backup data: no projects found in {version}")

            return metadata, payload, compressed

        raise BackupNotFoundError(f"Backup {version} not found")

    async def _restore(self, version: str) -> Tuple[SnapshotMetadata, List[Any]]:
        metadata, payload, compressed = await self._locate(version)

        if compressed:
            try:
                serialized = await decompress_data(payload)
            except CompressionError as e:
                raise BackupIntegrityError(f"Backup {version} is corrupt: {e}")
        else:
            try:
                serialized = serialize_projects(payload)
            except BackupFormatError as e:
                raise BackupIntegrityError(f"Backup {version} is corrupt: {e}")

        if generate_checksum(serialized) != metadata.checksum:
            self.logger.error(f"Backup integrity check failed for {version}")
            raise BackupIntegrityError(f"Backup integrity check failed for {version}")

        try:
            projects = json.loads(serialized)
        except json.JSONDecodeError as e:
            raise BackupIntegrityError(f"Backup {version} is corrupt: {e}")

        if not isinstance(projects, list):
            raise BackupIntegrityError(f"Invalid backup data: no projects found in {version}")

        metadata.compressed = compressed
        return metadata, projects

    async def restore_backup(self, version: str) -> List[Any]:
        """
        Restore the project list of a snapshot.

        Raises:
            BackupNotFoundError: If the version does not exist in either form
            BackupIntegrityError: If the payload fails its checksum
        """
        _, projects = await self._restore(version)
        self.logger.info(f"Restored backup {version} ({len(projects)} projects)")
        return projects

    async def delete_backup(self, version: str):
        """
        Delete a snapshot in every form it exists in.

        Raises:
            BackupNotFoundError: If the version does not exist
            StorageError: If deletion fails
        """
        if not isinstance(version, str) or not _VERSION_PATTERN.match(version):
            raise BackupNotFoundError(f"Backup {version} not found")

        forms = [compressed for found, compressed in await self.store.list_versions() if found == version]
        if not forms:
            raise BackupNotFoundError(f"Backup {version} not found")

        for compressed in forms:
            await self.store.delete_snapshot(version, compressed)
        self.logger.info(f"Deleted backup {version}")

    async def _delete_quietly(self, metadata: SnapshotMetadata) -> Optional[str]:
        try:
            await self.store.delete_snapshot(metadata.version, metadata.compressed)
            return None
        except StorageError as e:
            message = f"Failed to delete backup {metadata.version}: {e}"
            self.logger.error(message)
            return message

    async def run_cleanup(self) -> CleanupSummary:
        """
        Prune snapshots down to the per-category retention counts.

        Kept snapshots get their refreshed retention category written back.
        Failures on individual snapshots are logged and do not stop the pass.

        Returns:
            CleanupSummary of kept and deleted versions and per-item errors
        """
        backups = await self.list_backups()
        plan = plan_cleanup(backups, self.settings, self.now())
        summary = CleanupSummary(kept=plan.keep_versions)

        self.logger.info(
            f"Cleanup keeping {len(plan.keep)} backups: "
            f"{[(b.version, b.retention_category) for b in plan.keep]}"
        )

        for metadata in plan.keep:
            try:
                await self.store.update_metadata(metadata)
            except StorageError as e:
                message = f"Failed to update backup metadata for {metadata.version}: {e}"
                self.logger.error(message)
                summary.errors.append(message)

        if plan.delete:
            self.logger.info(
                f"Cleanup deleting {len(plan.delete)} backups: "
                f"{[(b.version, b.retention_category) for b in plan.delete]}"
            )

        results = await asyncio.gather(*(self._delete_quietly(metadata) for metadata in plan.delete))
        for metadata, error in zip(plan.delete, results):
            if error:
                summary.errors.append(error)
            else:
                summary.deleted.append(metadata.version)

        return summary

    # Export / import

    async def export_backup(self, version: str, export_path: Union[str, Path]):
        """
        Write a snapshot as a self-contained {"metadata", "projects"} document.

        Raises:
            BackupNotFoundError: If the version does not exist
            BackupIntegrityError: If the payload fails its checksum
            StorageError: If the document cannot be written
        """
        metadata, projects = await self._restore(version)
        metadata.retention_category = classify(metadata.timestamp, self.now())

        await self.store.write_export(export_path, {
            'metadata': metadata.to_dict(),
            'projects': projects
        })
        self.logger.info(f"Exported backup {version} to {export_path}")

    async def import_backup(self, import_path: Union[str, Path]) -> SnapshotMetadata:
        """
        Create a new snapshot from an exported document.

        The new snapshot is dated now; the document's own metadata is ignored.

        Raises:
            BackupFormatError: If the document has no projects list
            StorageError: If the file cannot be read
        """
        content = await self.store.read_import(import_path)

        try:
            document = json.loads(content)
        except json.JSONDecodeError as e:
            raise BackupFormatError(f"Invalid backup file format: {e}")

        if not isinstance(document, dict) or not isinstance(document.get('projects'), list):
            raise BackupFormatError("Invalid backup file format: missing projects list")

        self.logger.info(f"Importing backup from {import_path}")
        return await self.create_backup(document['projects'])

    # Lifecycle

    def start_auto_backup(self, project_supplier: Callable, interval_minutes: int = DEFAULT_AUTO_BACKUP_MINUTES):
        """
        Start periodic backups of the projects returned by project_supplier.

        Replaces any auto backup already running for this manager.
        """
        from gamebook.scheduler import AutoBackupScheduler

        self.stop_auto_backup()
        self._auto_backup = AutoBackupScheduler(self, project_supplier, interval_minutes)
        self._auto_backup.start()
        return self._auto_backup

    def stop_auto_backup(self):
        """Stop periodic backups, if running."""
        if self._auto_backup is not None:
            self._auto_backup.stop()
            self._auto_backup = None

    @property
    def auto_backup(self):
        return self._auto_backup

    def shutdown(self):
        """Stop periodic backups and release storage resources."""
        self.stop_auto_backup()
        self.store.close()
