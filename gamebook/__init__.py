import os
import asyncio
import atexit
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask.logging import default_handler


_log_handlers = []


def configure_logging(app):
    """Configure application logging"""

    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'gamebook.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # The app logger is the "gamebook" logger, parent of every module logger
    # in the package. Handlers from an earlier app are replaced and closed.
    for handler in _log_handlers:
        app.logger.removeHandler(handler)
        handler.close()
    _log_handlers[:] = [console_handler, file_handler]

    app.logger.removeHandler(default_handler)
    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)
    app.logger.addHandler(file_handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, test_config=None, project_supplier=None):
    """
    Flask application factory.

    Args:
        config_name: Key of gamebook.config.config (default: $FLASK_ENV or production)
        test_config: Optional dict overriding configuration values
        project_supplier: Callable returning the projects to back up
            automatically; auto backup is skipped without one
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from gamebook.config import config
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)

    # Configure logging
    configure_logging(app)

    # Ensure required directories exist
    os.makedirs(app.config['DATA_DIR'], exist_ok=True)

    # Backup manager (one per application)
    from gamebook.backup import BackupManager
    manager = BackupManager(app.config['DATA_DIR'], logger=app.logger)
    asyncio.run(manager.initialize())
    app.extensions['backup_manager'] = manager

    # Register blueprints
    from gamebook.routes import backup_routes, settings_routes
    app.register_blueprint(backup_routes.bp)
    app.register_blueprint(settings_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    if app.config['AUTO_BACKUP_ENABLED'] and project_supplier is not None:
        manager.start_auto_backup(project_supplier, app.config['AUTO_BACKUP_INTERVAL_MINUTES'])
        app.logger.info("Auto backup scheduler started")
    else:
        app.logger.info("Auto backup disabled (not enabled in config or no project supplier)")

    # Stop the scheduler and release storage on interpreter exit,
    # unless shutdown_app() runs first
    atexit.register(manager.shutdown)

    return app


def shutdown_app(app):
    """Stop the app's backup manager and drop its exit hook."""
    manager = app.extensions.get('backup_manager')
    if manager is None:
        return

    atexit.unregister(manager.shutdown)
    manager.shutdown()
    del app.extensions['backup_manager']
