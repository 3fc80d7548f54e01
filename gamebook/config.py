import os


def _env_flag(name, default):
    return os.environ.get(name, default).lower() == 'true'


class Config:
    """Base configuration"""

    # Data directory holding backup-settings.json and backups/
    DATA_DIR = os.environ.get('GAMEBOOK_DATA_DIR') or os.path.join(os.path.expanduser('~'), '.gamebook')
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(DATA_DIR, 'logs')

    # Automatic backups
    AUTO_BACKUP_ENABLED = _env_flag('AUTO_BACKUP_ENABLED', 'true')
    AUTO_BACKUP_INTERVAL_MINUTES = int(os.environ.get('AUTO_BACKUP_INTERVAL_MINUTES', 5))

    JSON_SORT_KEYS = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration (DATA_DIR is expected to be overridden)"""
    TESTING = True
    DEBUG = False
    AUTO_BACKUP_ENABLED = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
