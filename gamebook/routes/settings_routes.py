"""
Settings routes - backup retention settings and auto backup schedule.
"""

from flask import Blueprint, jsonify, request, current_app

from gamebook.backup import StorageError


bp = Blueprint('settings', __name__, url_prefix='/api/settings')


def _manager():
    return current_app.extensions['backup_manager']


@bp.route('/backup', methods=['GET'])
async def get_backup_settings():
    """
    Get backup retention settings.

    Returns:
        JSON with maxBackups, retentionPeriod, autoCleanup and compression
    """
    settings = await _manager().get_settings()
    return jsonify(settings.to_dict())


@bp.route('/backup', methods=['PUT'])
async def update_backup_settings():
    """
    Replace backup retention settings.

    Fields omitted from the request body are reset to their defaults.
    Runs a cleanup pass when autoCleanup is enabled.

    Returns:
        JSON with the settings now in effect
    """
    data = request.get_json(silent=True)

    if not isinstance(data, dict):
        return jsonify({'error': 'Settings must be a JSON object'}), 400

    manager = _manager()

    try:
        await manager.update_settings(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except StorageError as e:
        return jsonify({'error': f'Failed to save settings: {e}'}), 500

    settings = await manager.get_settings()
    return jsonify(settings.to_dict())


@bp.route('/schedule', methods=['GET'])
def get_schedule():
    """
    Get auto backup scheduler status.

    Returns:
        JSON with running flag, interval and scheduled jobs
    """
    auto_backup = _manager().auto_backup

    if auto_backup is None:
        return jsonify({
            'running': False,
            'interval_minutes': None,
            'jobs': []
        })

    return jsonify({
        'running': auto_backup.running,
        'interval_minutes': auto_backup.interval_minutes,
        'jobs': auto_backup.get_scheduled_jobs() if auto_backup.running else []
    })


@bp.route('/schedule/run', methods=['POST'])
def run_backup_now():
    """Trigger an automatic backup immediately."""
    auto_backup = _manager().auto_backup

    if auto_backup is None or not auto_backup.running:
        return jsonify({'error': 'Auto backup is not running'}), 409

    job_id = auto_backup.trigger_now()
    return jsonify({'message': 'Backup triggered', 'job_id': job_id}), 202
