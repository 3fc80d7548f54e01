"""
Snapshot storage in the local backup directory.

Layout:
- {version}.json: uncompressed snapshot, {"metadata": {...}, "projects": [...]}
- {version}.meta.json + {version}.gz: compressed snapshot, metadata record
  plus gzip blob of the serialized projects

The store also owns the retention settings file and the version catalog.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, List, Tuple, Dict, Any, Union

import aiofiles
import aiofiles.os
from sqlalchemy.exc import SQLAlchemyError

from .catalog import SnapshotCatalog
from .models import SnapshotMetadata, VERSION_PREFIX, dumps_json


logger = logging.getLogger(__name__)

COMPRESSED_EXTENSION = '.gz'
UNCOMPRESSED_EXTENSION = '.json'
METADATA_EXTENSION = '.meta.json'
CATALOG_FILENAME = 'catalog.sqlite3'


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


class SnapshotStore:
    """
    Persists snapshot artifacts and retention settings on the local filesystem.
    """

    def __init__(self, backup_dir: Union[str, Path], settings_path: Union[str, Path]):
        """
        Initialize snapshot storage.

        Args:
            backup_dir: Directory holding the snapshot files
            settings_path: Path of the retention settings JSON file
        """
        self.backup_dir = Path(backup_dir)
        self.settings_path = Path(settings_path)
        self.catalog = SnapshotCatalog(self.backup_dir / CATALOG_FILENAME)

    def snapshot_path(self, version: str, compressed: bool) -> Path:
        """Path of the main artifact of a snapshot (.gz blob or .json record)."""
        extension = COMPRESSED_EXTENSION if compressed else UNCOMPRESSED_EXTENSION
        return self.backup_dir / f"{version}{extension}"

    def metadata_path(self, version: str) -> Path:
        """Path of the metadata companion of a compressed snapshot."""
        return self.backup_dir / f"{version}{METADATA_EXTENSION}"

    async def ensure_directory(self):
        """
        Create the backup directory if it does not exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            await aiofiles.os.makedirs(self.backup_dir, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {self.backup_dir}: {e}")

    async def _write_file(self, path: Path, data: Union[str, bytes]):
        # Written under a temporary name first so readers never see a partial file
        temp_path = path.with_name(path.name + '.tmp')
        mode = 'wb' if isinstance(data, bytes) else 'w'
        encoding = None if isinstance(data, bytes) else 'utf-8'

        try:
            async with aiofiles.open(temp_path, mode, encoding=encoding) as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

    async def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt JSON in {path}: {e}")

    async def write_snapshot(self, metadata: SnapshotMetadata, payload: Union[bytes, List[Any]]):
        """
        Persist a snapshot.

        For compressed snapshots payload is the gzip blob and the metadata is
        written to its own companion file first, so a listed blob always has
        its metadata. For uncompressed snapshots payload is the project list,
        stored inline next to the metadata. Files left by an earlier snapshot
        of the same version in the other layout are removed.

        Args:
            metadata: Snapshot metadata (metadata.compressed selects the layout)
            payload: Compressed bytes or the project list

        Raises:
            StorageError: If any artifact cannot be written
        """
        await self.ensure_directory()

        if metadata.compressed:
            await self._write_file(
                self.metadata_path(metadata.version),
                json.dumps({'metadata': metadata.to_dict()}, indent=2)
            )
            await self._write_file(self.snapshot_path(metadata.version, True), payload)
        else:
            document = {'metadata': metadata.to_dict(), 'projects': payload}
            await self._write_file(
                self.snapshot_path(metadata.version, False),
                dumps_json(document, indent=2)
            )

        # A version lives in exactly one form
        if metadata.compressed:
            await self._remove_if_exists(self.snapshot_path(metadata.version, False))
        else:
            await self._remove_if_exists(self.snapshot_path(metadata.version, True))
            await self._remove_if_exists(self.metadata_path(metadata.version))

        await self._catalog_call('register', metadata.version, metadata.timestamp, metadata.compressed)

    async def _remove_if_exists(self, path: Path):
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")

    async def update_metadata(self, metadata: SnapshotMetadata):
        """
        Rewrite the metadata record of an existing snapshot.

        Raises:
            StorageError: If the snapshot is missing or cannot be rewritten
        """
        if metadata.compressed:
            await self._write_file(
                self.metadata_path(metadata.version),
                json.dumps({'metadata': metadata.to_dict()}, indent=2)
            )
            return

        path = self.snapshot_path(metadata.version, False)
        document = await self._read_json(path)
        if document is None:
            raise StorageError(f"Snapshot file not found: {path}")

        document['metadata'] = metadata.to_dict()
        await self._write_file(path, dumps_json(document, indent=2))

    async def read_metadata(self, version: str, compressed: bool) -> Optional[SnapshotMetadata]:
        """
        Read the metadata record of a snapshot.

        Returns:
            SnapshotMetadata, or None if the record does not exist

        Raises:
            StorageError: If the record exists but is unreadable or invalid
        """
        path = self.metadata_path(version) if compressed else self.snapshot_path(version, False)
        document = await self._read_json(path)
        if document is None:
            return None

        try:
            return SnapshotMetadata.from_dict(document.get('metadata') if isinstance(document, dict) else None)
        except ValueError as e:
            raise StorageError(f"Invalid metadata in {path}: {e}")

    async def read_payload(self, version: str, compressed: bool) -> Optional[Union[bytes, List[Any]]]:
        """
        Read the stored payload of a snapshot.

        Returns:
            Compressed bytes for compressed snapshots, the inline project list
            for uncompressed ones (None if the record has no projects field),
            or None if the artifact does not exist

        Raises:
            StorageError: If the artifact is unreadable
        """
        path = self.snapshot_path(version, compressed)

        if not compressed:
            document = await self._read_json(path)
            if not isinstance(document, dict):
                return None
            return document.get('projects')

        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

    async def list_versions(self) -> List[Tuple[str, bool]]:
        """
        List snapshots present on disk.

        Metadata companions of compressed snapshots are not counted.

        Returns:
            List of (version, compressed) tuples sorted by version, newest first
        """
        await self.ensure_directory()

        try:
            names = await aiofiles.os.listdir(self.backup_dir)
        except OSError as e:
            raise StorageError(f"Failed to list backup directory: {e}")

        entries = []
        for name in names:
            if not name.startswith(VERSION_PREFIX) or name.endswith(METADATA_EXTENSION):
                continue
            if name.endswith(COMPRESSED_EXTENSION):
                entries.append((name[:-len(COMPRESSED_EXTENSION)], True))
            elif name.endswith(UNCOMPRESSED_EXTENSION):
                entries.append((name[:-len(UNCOMPRESSED_EXTENSION)], False))

        entries.sort(key=lambda entry: entry[0], reverse=True)
        return entries

    async def lookup_form(self, version: str) -> Optional[bool]:
        """
        Resolve the physical form of a version from the catalog.

        Returns:
            True if compressed, False if uncompressed, None if unknown
        """
        return await self._catalog_call('lookup', version)

    async def delete_snapshot(self, version: str, compressed: bool):
        """
        Delete a snapshot's artifacts.

        Removing the metadata companion is best effort.

        Raises:
            StorageError: If the main artifact cannot be deleted
        """
        path = self.snapshot_path(version, compressed)

        try:
            await aiofiles.os.remove(path)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")

        if compressed:
            try:
                await aiofiles.os.remove(self.metadata_path(version))
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to delete metadata for {version}: {e}")

        await self._catalog_call('unregister', version)

    async def read_settings(self) -> Optional[Dict[str, Any]]:
        """
        Read the raw settings document.

        Returns:
            Parsed JSON, or None if no settings file exists yet

        Raises:
            StorageError: If the file is unreadable or not valid JSON
        """
        return await self._read_json(self.settings_path)

    async def write_settings(self, settings: Dict[str, Any]):
        """
        Persist the settings document.

        Raises:
            StorageError: If the file cannot be written
        """
        try:
            await aiofiles.os.makedirs(self.settings_path.parent, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create settings directory: {e}")
        await self._write_file(self.settings_path, json.dumps(settings, indent=2))

    async def write_export(self, path: Union[str, Path], document: Dict[str, Any]):
        """
        Write a self-contained backup document outside the backup directory.

        Raises:
            StorageError: If the file cannot be written
        """
        path = Path(path)
        try:
            async with aiofiles.open(path, 'w', encoding='utf-8') as f:
                await f.write(dumps_json(document, indent=2))
        except OSError as e:
            raise StorageError(f"Failed to export backup to {path}: {e}")

    async def read_import(self, path: Union[str, Path]) -> str:
        """
        Read an external backup document.

        Raises:
            StorageError: If the file cannot be read
        """
        path = Path(path)
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                return await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read import file {path}: {e}")

    async def _catalog_call(self, operation: str, *args):
        # The catalog is an index only; its failures never fail a snapshot operation
        try:
            return await asyncio.to_thread(getattr(self.catalog, operation), *args)
        except SQLAlchemyError as e:
            logger.warning(f"Backup catalog unavailable ({operation}): {e}")
            return None

    def close(self):
        """Release the catalog's database connections."""
        self.catalog.close()
