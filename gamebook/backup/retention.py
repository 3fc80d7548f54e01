"""
Retention policy for backup snapshots.

Snapshots are bucketed by age relative to a reference instant:
- daily: less than 7 days old (or dated in the future)
- weekly: 7 to 29 days old
- monthly: 30 days or older

The cleanup plan keeps the N most recent snapshots of each bucket, where N
comes from RetentionSettings.retention_period (never less than one).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .models import (
    DAILY, WEEKLY, MONTHLY, RETENTION_CATEGORIES,
    SnapshotMetadata, RetentionSettings, parse_timestamp
)


logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
WEEKLY_AFTER_DAYS = 7
MONTHLY_AFTER_DAYS = 30

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def classify(timestamp: str, reference: Optional[datetime] = None) -> str:
    """
    Determine the retention category of a snapshot.

    Args:
        timestamp: ISO-8601 creation time of the snapshot
        reference: Instant to measure age against (default: now, UTC)

    Returns:
        'daily', 'weekly' or 'monthly'. Unparseable timestamps are daily.
    """
    if reference is None:
        reference = datetime.now(timezone.utc)
    elif reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    try:
        created = parse_timestamp(timestamp)
    except ValueError:
        logger.error(f"Invalid backup timestamp: {timestamp!r}, categorizing as daily")
        return DAILY

    # Whole days, floored (negative for future timestamps)
    diff_days = (reference - created) // ONE_DAY

    if diff_days < 0:
        logger.debug(f"Backup {timestamp} is in the future, categorizing as daily")
        return DAILY
    if diff_days >= MONTHLY_AFTER_DAYS:
        return MONTHLY
    if diff_days >= WEEKLY_AFTER_DAYS:
        return WEEKLY
    return DAILY


def _sort_key(snapshot: SnapshotMetadata) -> datetime:
    try:
        return parse_timestamp(snapshot.timestamp)
    except ValueError:
        return _OLDEST


@dataclass
class CleanupPlan:
    """Keep/delete partition produced by plan_cleanup()."""

    keep: List[SnapshotMetadata] = field(default_factory=list)
    delete: List[SnapshotMetadata] = field(default_factory=list)

    @property
    def keep_versions(self) -> List[str]:
        return [snapshot.version for snapshot in self.keep]

    @property
    def delete_versions(self) -> List[str]:
        return [snapshot.version for snapshot in self.delete]


def categorize(snapshots: List[SnapshotMetadata], now: datetime) -> Dict[str, List[SnapshotMetadata]]:
    """
    Recompute each snapshot's category and group them, most recent first.

    The retention_category of every snapshot is updated in place.
    """
    buckets: Dict[str, List[SnapshotMetadata]] = {category: [] for category in RETENTION_CATEGORIES}

    for snapshot in snapshots:
        snapshot.retention_category = classify(snapshot.timestamp, now)
        buckets[snapshot.retention_category].append(snapshot)

    for bucket in buckets.values():
        bucket.sort(key=_sort_key, reverse=True)

    return buckets


def plan_cleanup(
    snapshots: List[SnapshotMetadata],
    settings: RetentionSettings,
    now: datetime
) -> CleanupPlan:
    """
    Decide which snapshots survive a cleanup pass.

    Pure function: no I/O is performed. Kept snapshots carry their freshly
    computed retention_category so callers can persist it.

    Args:
        snapshots: Full snapshot inventory
        settings: Retention settings providing per-category counts
        now: Reference instant for categorization

    Returns:
        CleanupPlan with keep and delete lists
    """
    buckets = categorize(snapshots, now)
    plan = CleanupPlan()
    kept = set()

    for category in RETENTION_CATEGORIES:
        limit = max(settings.retention_period.for_category(category), 1)
        for snapshot in buckets[category][:limit]:
            plan.keep.append(snapshot)
            kept.add(snapshot.version)

    plan.delete = [snapshot for snapshot in snapshots if snapshot.version not in kept]
    return plan
