import os

from xtraship.errors import ConfigError


REQUIRED_ENV_VARIABLES = (
    '_APP_CONNECTIONS_BACKUPS_STORAGE',
    '_APP_CONNECTIONS_DB_REPLICAS',
)


class Config:
    """Base configuration"""

    # Staging
    BACKUPS_PATH = os.environ.get('BACKUPS_PATH') or '/backups'
    TRANSFER_CHUNK_SIZE = 5 * 1024 * 1024  # 5MB

    # Scheduler
    BACKUP_INTERVAL_SECONDS = int(os.environ.get('BACKUP_INTERVAL_SECONDS', 60 * 60 * 4))

    # Retention
    LOCAL_RETENTION_SECONDS = int(os.environ.get('LOCAL_RETENTION_SECONDS', 60 * 60 * 24))
    REMOTE_RETENTION_SECONDS = int(os.environ.get('REMOTE_RETENTION_SECONDS', 60 * 60 * 24))

    # xtrabackup
    COMPRESS_ALGORITHM = os.environ.get('COMPRESS_ALGORITHM') or 'zstd'
    SAFE_SLAVE_BACKUP_TIMEOUT = 300

    # Runner
    RUNNER = os.environ.get('BACKUP_RUNNER') or 'docker'
    XTRABACKUP_CONTAINER = os.environ.get('XTRABACKUP_CONTAINER') or 'xtrabackup'
    SSH_HOST = os.environ.get('BACKUP_SSH_HOST')
    SSH_PORT = int(os.environ.get('BACKUP_SSH_PORT', 22))
    SSH_USERNAME = os.environ.get('BACKUP_SSH_USERNAME')
    SSH_PASSWORD = os.environ.get('BACKUP_SSH_PASSWORD')
    SSH_PRIVATE_KEY = os.environ.get('BACKUP_SSH_PRIVATE_KEY')

    # Logging
    DEBUG = False
    LOG_DIR = os.environ.get('LOG_DIR')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Short cycles for local testing
    BACKUP_INTERVAL_SECONDS = int(os.environ.get('BACKUP_INTERVAL_SECONDS', 120))

    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    BACKUPS_PATH = '/tmp/xtraship-tests'
    BACKUP_INTERVAL_SECONDS = 1
    LOG_DIR = None


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}


def get_config(config_name=None):
    """Return the configuration class for a name (or XTRASHIP_ENV)."""
    if config_name is None:
        config_name = os.environ.get('XTRASHIP_ENV', 'default')

    try:
        return config[config_name]
    except KeyError:
        raise ConfigError(f"Unknown configuration: {config_name}")


def check_env_variables(environ=None):
    """
    Ensure every required connection variable is set.

    Returns:
        Dict of variable name to value

    Raises:
        ConfigError: If any variable is missing or empty
    """
    environ = os.environ if environ is None else environ

    values = {}
    for name in REQUIRED_ENV_VARIABLES:
        value = environ.get(name, '')
        if not value:
            raise ConfigError(f"Can't read {name}")
        values[name] = value

    return values
