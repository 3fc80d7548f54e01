"""
Shared pytest fixtures for gamebook tests.

This module provides fixtures for:
- BackupManager instances with isolated data directories
- Sample project payloads
- Flask app and test client
- A recording logger for asserting log events
"""

import pytest
import pytest_asyncio

from gamebook import create_app, shutdown_app
from gamebook.backup import BackupManager, RetentionSettings, RetentionPeriod, SnapshotStore


class RecordingLogger:
    """Logger stand-in that keeps (level, message) tuples."""

    def __init__(self):
        self.records = []

    def info(self, message, *args):
        self.records.append(('info', message % args if args else message))

    def warning(self, message, *args):
        self.records.append(('warning', message % args if args else message))

    def error(self, message, *args):
        self.records.append(('error', message % args if args else message))

    def messages(self, level):
        return [message for record_level, message in self.records if record_level == level]


@pytest.fixture
def sample_projects():
    """Two small gamebook projects."""
    return [
        {
            'id': 1,
            'name': 'Test Project 1',
            'paragraphs': [
                {'id': 1, 'title': 'Start', 'content': 'You wake up in a dark room.',
                 'actions': [{'text': 'Open the door', 'goto': 2}]},
                {'id': 2, 'title': 'Hallway', 'content': 'A long hallway stretches ahead.', 'actions': []}
            ]
        },
        {'id': 2, 'name': 'Test Project 2 – ünïcode', 'paragraphs': []}
    ]


@pytest.fixture
def large_projects():
    """Payload large and repetitive enough to compress well."""
    return [
        {'id': i, 'name': f'Project {i}', 'content': 'The dragon sleeps on its hoard. ' * 20}
        for i in range(50)
    ]


@pytest.fixture
def test_settings():
    """Uncompressed settings without auto cleanup."""
    return RetentionSettings(
        max_backups=3,
        retention_period=RetentionPeriod(daily=1, weekly=1, monthly=1),
        auto_cleanup=False,
        compression=False
    )


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest_asyncio.fixture
async def manager(tmp_path, test_settings, recording_logger):
    """
    Initialized BackupManager in a temporary data directory.

    Uses test_settings (no compression, no auto cleanup).
    """
    backup_manager = BackupManager(tmp_path / 'data', settings=test_settings, logger=recording_logger)
    await backup_manager.initialize()
    yield backup_manager
    backup_manager.shutdown()


@pytest.fixture
def store(tmp_path):
    """SnapshotStore in a temporary directory."""
    snapshot_store = SnapshotStore(tmp_path / 'backups', tmp_path / 'backup-settings.json')
    yield snapshot_store
    snapshot_store.close()


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses a temporary data directory; auto backup is disabled.
    """
    app = create_app('testing', test_config={
        'DATA_DIR': str(tmp_path / 'data'),
        'LOG_DIR': str(tmp_path / 'logs'),
    })

    yield app

    shutdown_app(app)


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()
