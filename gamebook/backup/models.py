"""
Data model for backup snapshots and retention settings.

Both types are persisted as JSON with camelCase keys so that backup folders
stay readable by every version of the application.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any


DAILY = 'daily'
WEEKLY = 'weekly'
MONTHLY = 'monthly'
RETENTION_CATEGORIES = (DAILY, WEEKLY, MONTHLY)

VERSION_PREFIX = 'backup_'


def format_timestamp(moment: datetime) -> str:
    """
    Format an instant as UTC ISO-8601 with millisecond precision.

    Naive datetimes are assumed to be UTC.

    Example: 2024-02-01T00:00:00.000Z
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If value is not a valid ISO-8601 instant
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value[:-1] + '+00:00' if value.endswith(('Z', 'z')) else value
    moment = datetime.fromisoformat(text)

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def dumps_json(value: Any, **kwargs) -> str:
    """
    Serialize value to JSON text that always encodes as UTF-8.

    Non-ASCII characters are kept as they are, unless the value holds lone
    surrogates. Those only survive as \\u escapes, so the whole document is
    then written with ensure_ascii.
    """
    text = json.dumps(value, ensure_ascii=False, **kwargs)
    try:
        text.encode('utf-8')
    except UnicodeEncodeError:
        text = json.dumps(value, ensure_ascii=True, **kwargs)
    return text


def version_for_timestamp(timestamp: str) -> str:
    """
    Derive the snapshot version key from its timestamp.

    Format: backup_{timestamp with ':' and '.' replaced by '-'}
    """
    return VERSION_PREFIX + timestamp.replace(':', '-').replace('.', '-')


@dataclass
class SnapshotMetadata:
    """Metadata record of one persisted snapshot."""

    version: str
    timestamp: str
    checksum: str
    size: int
    compressed: bool = False
    compressed_size: Optional[int] = None
    retention_category: str = DAILY

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'version': self.version,
            'timestamp': self.timestamp,
            'checksum': self.checksum,
            'size': self.size,
            'compressed': self.compressed,
            'retentionCategory': self.retention_category,
        }
        if self.compressed_size is not None:
            data['compressedSize'] = self.compressed_size
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotMetadata':
        """
        Build metadata from its persisted form.

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Backup metadata must be an object")

        for key in ('version', 'timestamp', 'checksum'):
            if not isinstance(data.get(key), str):
                raise ValueError(f"Backup metadata field '{key}' is missing or invalid")

        size = data.get('size')
        if not isinstance(size, int) or isinstance(size, bool):
            raise ValueError("Backup metadata field 'size' is missing or invalid")

        category = data.get('retentionCategory', DAILY)
        if category not in RETENTION_CATEGORIES:
            category = DAILY

        return cls(
            version=data['version'],
            timestamp=data['timestamp'],
            checksum=data['checksum'],
            size=size,
            compressed=bool(data.get('compressed', False)),
            compressed_size=data.get('compressedSize'),
            retention_category=category
        )


@dataclass
class RetentionPeriod:
    """Number of most recent snapshots to keep per retention category."""

    daily: int = 7
    weekly: int = 4
    monthly: int = 3

    def for_category(self, category: str) -> int:
        if category not in RETENTION_CATEGORIES:
            raise ValueError(f"Unknown retention category: {category}")
        return getattr(self, category)


def _require_int(value, name):
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Setting '{name}' must be an integer")
    return value


def _require_bool(value, name):
    if not isinstance(value, bool):
        raise ValueError(f"Setting '{name}' must be a boolean")
    return value


@dataclass
class RetentionSettings:
    """
    Backup retention configuration.

    max_backups is advisory only: the cleanup pass is driven by the
    per-category counts in retention_period.
    """

    max_backups: int = 30
    retention_period: RetentionPeriod = field(default_factory=RetentionPeriod)
    auto_cleanup: bool = True
    compression: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'maxBackups': self.max_backups,
            'retentionPeriod': asdict(self.retention_period),
            'autoCleanup': self.auto_cleanup,
            'compression': self.compression,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], partial: bool = False) -> 'RetentionSettings':
        """
        Build settings from their persisted (camelCase) form.

        Fields missing from data fall back to the defaults when partial is
        True. Otherwise maxBackups, retentionPeriod and autoCleanup are
        required and only compression may be omitted.

        Raises:
            ValueError: If the structure is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Settings must be an object")

        if not partial:
            missing = [key for key in ('maxBackups', 'retentionPeriod', 'autoCleanup') if key not in data]
            if missing:
                raise ValueError(f"Settings missing required fields: {', '.join(missing)}")

        defaults = cls()
        settings = cls()

        if 'maxBackups' in data:
            settings.max_backups = _require_int(data['maxBackups'], 'maxBackups')

        if 'retentionPeriod' in data:
            period = data['retentionPeriod']
            if not isinstance(period, dict):
                raise ValueError("Setting 'retentionPeriod' must be an object")
            if not partial:
                missing = [c for c in RETENTION_CATEGORIES if c not in period]
                if missing:
                    raise ValueError(f"Setting 'retentionPeriod' missing: {', '.join(missing)}")
            settings.retention_period = RetentionPeriod(**{
                category: _require_int(period.get(category, getattr(defaults.retention_period, category)),
                                       f"retentionPeriod.{category}")
                for category in RETENTION_CATEGORIES
            })

        if 'autoCleanup' in data:
            settings.auto_cleanup = _require_bool(data['autoCleanup'], 'autoCleanup')

        if 'compression' in data:
            settings.compression = _require_bool(data['compression'], 'compression')

        return settings
