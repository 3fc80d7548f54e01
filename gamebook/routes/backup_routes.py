"""
Backup routes - create, list, restore, export and import project snapshots.
"""

import logging
from flask import Blueprint, jsonify, request, current_app

from gamebook.backup import (
    BackupError,
    BackupNotFoundError,
    BackupIntegrityError,
    BackupFormatError,
    StorageError
)


bp = Blueprint('backups', __name__, url_prefix='/api/backups')
logger = logging.getLogger(__name__)


def _manager():
    return current_app.extensions['backup_manager']


@bp.errorhandler(BackupNotFoundError)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@bp.errorhandler(BackupIntegrityError)
def handle_integrity_error(e):
    return jsonify({'error': str(e)}), 409


@bp.errorhandler(BackupFormatError)
def handle_format_error(e):
    return jsonify({'error': str(e)}), 400


@bp.errorhandler(BackupError)
@bp.errorhandler(StorageError)
def handle_backup_error(e):
    logger.error(f"Backup operation failed: {e}")
    return jsonify({'error': str(e)}), 500


@bp.route('/', methods=['GET'])
async def list_backups():
    """
    List all backups, newest first.

    Returns:
        JSON with backup metadata records and total count
    """
    backups = await _manager().list_backups()

    return jsonify({
        'backups': [backup.to_dict() for backup in backups],
        'total': len(backups)
    })


@bp.route('/', methods=['POST'])
async def create_backup():
    """
    Create a backup.

    Request body:
        - projects: List of project records (required)

    Returns:
        JSON with the new version and its metadata
    """
    data = request.get_json(silent=True) or {}

    if not isinstance(data.get('projects'), list):
        return jsonify({'error': 'projects must be a list'}), 400

    metadata = await _manager().create_backup(data['projects'])

    return jsonify({
        'version': metadata.version,
        'metadata': metadata.to_dict()
    }), 201


@bp.route('/<version>/restore', methods=['POST'])
async def restore_backup(version):
    """
    Restore the projects of a backup.

    Returns:
        JSON with the restored project list
    """
    projects = await _manager().restore_backup(version)

    return jsonify({
        'version': version,
        'projects': projects
    })


@bp.route('/<version>/export', methods=['POST'])
async def export_backup(version):
    """
    Export a backup to a file.

    Request body:
        - path: Destination file path (required)
    """
    data = request.get_json(silent=True) or {}

    if not data.get('path'):
        return jsonify({'error': 'path is required'}), 400

    await _manager().export_backup(version, data['path'])

    return jsonify({'message': f'Backup {version} exported successfully'})


@bp.route('/import', methods=['POST'])
async def import_backup():
    """
    Import an exported backup file as a new backup.

    Request body:
        - path: Source file path (required)
    """
    data = request.get_json(silent=True) or {}

    if not data.get('path'):
        return jsonify({'error': 'path is required'}), 400

    metadata = await _manager().import_backup(data['path'])

    return jsonify({
        'version': metadata.version,
        'metadata': metadata.to_dict()
    }), 201


@bp.route('/<version>', methods=['DELETE'])
async def delete_backup(version):
    """Delete a backup."""
    await _manager().delete_backup(version)

    return jsonify({'message': f'Backup {version} deleted successfully'})


@bp.route('/cleanup', methods=['POST'])
async def run_cleanup():
    """
    Run a retention cleanup pass.

    Returns:
        JSON with kept and deleted versions and per-backup errors
    """
    summary = await _manager().run_cleanup()

    return jsonify({
        'kept': summary.kept,
        'deleted': summary.deleted,
        'errors': summary.errors
    })
