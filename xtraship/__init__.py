import os
import sys
import argparse
import logging
from logging.handlers import RotatingFileHandler

from xtraship.config import get_config, check_env_variables
from xtraship.errors import FatalError


logger = logging.getLogger(__name__)

DATABASE_NAME_MAX_LENGTH = 20


def configure_logging(config):
    """Configure application logging"""

    log_level = logging.DEBUG if config.DEBUG else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers = [console_handler]

    # File handler
    if config.LOG_DIR:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(config.LOG_DIR, 'xtraship.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # botocore is chatty at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_service(database, config_name=None, environ=None, runner=None, probe=None):
    """
    Service factory: resolve everything a backup loop needs, once.

    Args:
        database: Database identifier, e.g. db_fra1_01
        config_name: Configuration name (defaults to XTRASHIP_ENV)
        environ: Mapping holding the connection variables (defaults to os.environ)
        runner: Pre-built backup tool runner (defaults to the configured one)
        probe: Replica connection probe (defaults to a SQLAlchemy connection)

    Returns:
        BackupScheduler ready to run_forever()

    Raises:
        FatalError: If configuration, storage, replica or runner setup fails
    """
    from xtraship.models import BackupContext, RetentionThresholds
    from xtraship.scheduler import BackupScheduler
    from xtraship.utils.dsn import parse_replicas, parse_storage
    from xtraship.backup import (
        BackupCycle,
        ConnectionResolver,
        LocalStorage,
        S3Storage,
        create_runner,
        detect_processors
    )

    config = get_config(config_name)
    configure_logging(config)

    values = check_env_variables(environ)

    resolver_kwargs = {'probe': probe} if probe is not None else {}
    resolver = ConnectionResolver(parse_replicas(values['_APP_CONNECTIONS_DB_REPLICAS']), **resolver_kwargs)
    target = resolver.resolve(database)

    storage_dsn = parse_storage(values['_APP_CONNECTIONS_BACKUPS_STORAGE'])
    remote = S3Storage(
        access_key=storage_dsn.access_key,
        secret_key=storage_dsn.secret_key,
        bucket_name=storage_dsn.bucket,
        root=f"{database}/full",
        region=storage_dsn.region,
        endpoint_url=storage_dsn.endpoint_url
    )
    local = LocalStorage(
        os.path.join(config.BACKUPS_PATH, database, 'full'),
        chunk_size=config.TRANSFER_CHUNK_SIZE
    )

    attempts = resolver.wait_until_ready(target)
    logger.info(f"Connected to replica of {database} after {attempts} attempt(s)")

    runner = runner or create_runner(config)
    processors = detect_processors(runner)
    logger.info(f"Backup tool runner {runner.identity} has {processors} processors")

    context = BackupContext(
        target=target,
        runner=runner,
        processors=processors,
        thresholds=RetentionThresholds(
            local_seconds=config.LOCAL_RETENTION_SECONDS,
            remote_seconds=config.REMOTE_RETENTION_SECONDS
        ),
        local=local,
        remote=remote,
        config=config
    )

    return BackupScheduler(BackupCycle(context), config.BACKUP_INTERVAL_SECONDS)


def _database_name(value):
    if not value or len(value) > DATABASE_NAME_MAX_LENGTH:
        raise argparse.ArgumentTypeError(
            f"database name must be 1-{DATABASE_NAME_MAX_LENGTH} characters"
        )
    return value


def main(argv=None):
    """Backup a database forever. Returns only through sys.exit on failure."""
    parser = argparse.ArgumentParser(prog='xtraship', description='Backup a database')
    parser.add_argument('database', type=_database_name, help='Database name, for example db_fra1_01')
    parser.add_argument('--config', dest='config_name', default=None,
                        help='Configuration name (development, production, testing)')
    args = parser.parse_args(argv)

    try:
        service = create_service(args.database, config_name=args.config_name)
        service.run_forever()
    except FatalError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        sys.exit(130)
