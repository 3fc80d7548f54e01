"""
Unit tests for the HTTP API (gamebook/routes/).

Tests status codes and response bodies of the backup and settings endpoints.
"""

import json
from unittest.mock import MagicMock, patch

import pytest


def _manager(app):
    return app.extensions['backup_manager']


def _create(client, projects):
    response = client.post('/api/backups/', json={'projects': projects})
    assert response.status_code == 201
    return response.get_json()['version']


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy'}


class TestBackupRoutes:
    """Test /api/backups endpoints."""

    def test_list_empty(self, client):
        response = client.get('/api/backups/')

        assert response.status_code == 200
        assert response.get_json() == {'backups': [], 'total': 0}

    def test_create_and_list(self, client, sample_projects):
        response = client.post('/api/backups/', json={'projects': sample_projects})

        assert response.status_code == 201
        data = response.get_json()
        assert data['version'].startswith('backup_')
        assert data['metadata']['compressed'] is True
        assert data['metadata']['retentionCategory'] == 'daily'

        listing = client.get('/api/backups/').get_json()
        assert listing['total'] == 1
        assert listing['backups'][0]['version'] == data['version']

    def test_create_with_lone_surrogate(self, client):
        projects = [{'id': 1, 'name': 'half \ud83d pair'}]

        version = _create(client, projects)
        response = client.post(f'/api/backups/{version}/restore')

        assert response.status_code == 200
        assert response.get_json()['projects'] == projects

    @pytest.mark.parametrize("body", [{}, {'projects': 'all'}, {'projects': {'id': 1}}])
    def test_create_requires_project_list(self, client, body):
        response = client.post('/api/backups/', json=body)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'projects must be a list'

    def test_restore(self, client, sample_projects):
        version = _create(client, sample_projects)

        response = client.post(f'/api/backups/{version}/restore')

        assert response.status_code == 200
        assert response.get_json() == {'version': version, 'projects': sample_projects}

    def test_restore_not_found(self, client):
        response = client.post('/api/backups/backup_2020-01-01T00-00-00-000Z/restore')

        assert response.status_code == 404
        assert 'not found' in response.get_json()['error']

    def test_restore_corrupt_backup(self, app, client, sample_projects):
        version = _create(client, sample_projects)
        (_manager(app).store.backup_dir / f'{version}.gz').write_bytes(b'not gzip')

        response = client.post(f'/api/backups/{version}/restore')

        assert response.status_code == 409

    def test_export_and_import(self, client, sample_projects, tmp_path):
        version = _create(client, sample_projects)
        export_path = tmp_path / 'export.json'

        response = client.post(f'/api/backups/{version}/export', json={'path': str(export_path)})

        assert response.status_code == 200
        assert json.loads(export_path.read_text(encoding='utf-8'))['projects'] == sample_projects

        response = client.post('/api/backups/import', json={'path': str(export_path)})

        assert response.status_code == 201
        imported = response.get_json()['version']
        restored = client.post(f'/api/backups/{imported}/restore').get_json()
        assert restored['projects'] == sample_projects

    def test_export_requires_path(self, client, sample_projects):
        version = _create(client, sample_projects)

        response = client.post(f'/api/backups/{version}/export', json={})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'path is required'

    def test_import_invalid_document(self, client, tmp_path):
        import_path = tmp_path / 'import.json'
        import_path.write_text('{"metadata": {}}', encoding='utf-8')

        response = client.post('/api/backups/import', json={'path': str(import_path)})

        assert response.status_code == 400
        assert 'Invalid backup file format' in response.get_json()['error']

    def test_import_missing_file(self, client, tmp_path):
        response = client.post('/api/backups/import', json={'path': str(tmp_path / 'missing.json')})

        assert response.status_code == 500

    def test_delete(self, client, sample_projects):
        version = _create(client, sample_projects)

        response = client.delete(f'/api/backups/{version}')

        assert response.status_code == 200
        assert client.get('/api/backups/').get_json()['total'] == 0

    def test_delete_not_found(self, client):
        response = client.delete('/api/backups/backup_2020-01-01T00-00-00-000Z')

        assert response.status_code == 404

    def test_cleanup(self, client):
        response = client.post('/api/backups/cleanup')

        assert response.status_code == 200
        assert response.get_json() == {'kept': [], 'deleted': [], 'errors': []}


class TestSettingsRoutes:
    """Test /api/settings endpoints."""

    def test_get_defaults(self, client):
        response = client.get('/api/settings/backup')

        assert response.status_code == 200
        assert response.get_json() == {
            'maxBackups': 30,
            'retentionPeriod': {'daily': 7, 'weekly': 4, 'monthly': 3},
            'autoCleanup': True,
            'compression': True
        }

    def test_update_merges_with_defaults(self, app, client):
        response = client.put('/api/settings/backup', json={'maxBackups': 10, 'compression': False})

        assert response.status_code == 200
        data = response.get_json()
        assert data['maxBackups'] == 10
        assert data['compression'] is False
        assert data['retentionPeriod'] == {'daily': 7, 'weekly': 4, 'monthly': 3}

        settings_file = _manager(app).data_dir / 'backup-settings.json'
        assert json.loads(settings_file.read_text(encoding='utf-8')) == data

    @pytest.mark.parametrize("body", [[1, 2], 'text'])
    def test_update_requires_object(self, client, body):
        response = client.put('/api/settings/backup', json=body)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Settings must be a JSON object'

    def test_update_invalid_values(self, client):
        response = client.put('/api/settings/backup', json={'autoCleanup': 'yes'})

        assert response.status_code == 400
        assert 'autoCleanup' in response.get_json()['error']

    def test_schedule_disabled(self, client):
        response = client.get('/api/settings/schedule')

        assert response.status_code == 200
        assert response.get_json() == {'running': False, 'interval_minutes': None, 'jobs': []}

    def test_run_now_when_disabled(self, client):
        response = client.post('/api/settings/schedule/run')

        assert response.status_code == 409

    @patch('gamebook.scheduler.BackgroundScheduler')
    def test_schedule_running(self, mock_scheduler_class, app, client):
        mock_scheduler = MagicMock()
        mock_scheduler.running = False
        mock_scheduler.get_jobs.return_value = []
        mock_scheduler.add_job.return_value = MagicMock(id='manual_1700000000000')
        mock_scheduler_class.return_value = mock_scheduler

        _manager(app).start_auto_backup(lambda: [], interval_minutes=15)
        mock_scheduler.running = True

        status = client.get('/api/settings/schedule').get_json()
        assert status == {'running': True, 'interval_minutes': 15, 'jobs': []}

        response = client.post('/api/settings/schedule/run')
        assert response.status_code == 202
        assert response.get_json()['job_id'] == 'manual_1700000000000'
