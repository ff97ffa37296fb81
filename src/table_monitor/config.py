"""
Configuration loading for the table monitor.

Settings come from environment variables, optionally seeded from a .env
file, and are parsed once at startup into an immutable MonitorConfig that
is passed explicitly to the components that need it.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, List

from dotenv import load_dotenv, find_dotenv

from table_monitor.errors import ConfigInvalid

REQUIRED_KEYS = (
    'DB_HOST',
    'DB_NAME',
    'DB_USER',
    'DATA_TABLE',
    'SOURCE_NAME',
    'SECRET_ID',
    'AUDIT_LOG_DIR',
)

SECRET_PROVIDERS = ('env', 'file')
CLOCK_SOURCES = ('local', 'database')

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off')


@dataclass(frozen=True)
class MonitorConfig:
    """Immutable settings for one monitor process."""

    db_host: str
    db_name: str
    db_user: str
    data_table: str
    source_name: str
    secret_id: str
    audit_log_dir: Path
    db_port: int = 5432
    data_schema: str = 'public'
    data_id_column: str = 'id'
    data_timestamp_column: str = 'timestamp_utc'
    state_schema: str = 'public'
    state_table: str = 'monitor_state'
    secret_provider: str = 'env'
    secret_dir: Optional[Path] = None
    query_timeout_seconds: int = 30
    connect_timeout_seconds: int = 10
    single_flight_lock: bool = True
    clock_source: str = 'local'
    audit_log_prefix: str = 'changes'
    audit_fsync: bool = True
    log_level: str = 'INFO'
    log_file: str = 'logs/table_monitor.log'

    def describe_target(self) -> str:
        """Connection target without credentials, for log lines."""
        return f"{self.db_user}@{self.db_host}:{self.db_port}/{self.db_name}"


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None
) -> MonitorConfig:
    """
    Build a MonitorConfig from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ after loading
            the .env file.
        env_file: Optional path to a .env file. When omitted, the nearest
            .env found from the working directory upwards is used. Values
            already present in the environment are not overridden.

    Returns:
        Validated MonitorConfig

    Raises:
        ConfigInvalid: If required keys are missing or values are malformed
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True))
        environ = os.environ

    def value(key: str, default: Optional[str] = None) -> Optional[str]:
        raw = environ.get(key)
        if raw is None or raw.strip() == '':
            return default
        return raw.strip()

    missing = [key for key in REQUIRED_KEYS if value(key) is None]
    if missing:
        raise ConfigInvalid(f"Missing required configuration: {', '.join(missing)}", missing)

    invalid: List[str] = []

    def positive_int(key: str, default: int) -> int:
        raw = value(key)
        if raw is None:
            return default
        try:
            parsed = int(raw)
        except ValueError:
            invalid.append(key)
            return default
        if parsed <= 0:
            invalid.append(key)
        return parsed

    def boolean(key: str, default: bool) -> bool:
        raw = value(key)
        if raw is None:
            return default
        if raw.lower() in _TRUE_VALUES:
            return True
        if raw.lower() in _FALSE_VALUES:
            return False
        invalid.append(key)
        return default

    def choice(key: str, default: str, allowed: tuple) -> str:
        raw = value(key, default).lower()
        if raw not in allowed:
            invalid.append(key)
        return raw

    secret_provider = choice('SECRET_PROVIDER', 'env', SECRET_PROVIDERS)
    secret_dir = value('SECRET_DIR')
    if secret_provider == 'file' and secret_dir is None:
        invalid.append('SECRET_DIR')

    config = MonitorConfig(
        db_host=value('DB_HOST'),
        db_name=value('DB_NAME'),
        db_user=value('DB_USER'),
        data_table=value('DATA_TABLE'),
        source_name=value('SOURCE_NAME'),
        secret_id=value('SECRET_ID'),
        audit_log_dir=Path(value('AUDIT_LOG_DIR')),
        db_port=positive_int('DB_PORT', 5432),
        data_schema=value('DATA_SCHEMA', 'public'),
        data_id_column=value('DATA_ID_COLUMN', 'id'),
        data_timestamp_column=value('DATA_TIMESTAMP_COLUMN', 'timestamp_utc'),
        state_schema=value('STATE_SCHEMA', 'public'),
        state_table=value('STATE_TABLE', 'monitor_state'),
        secret_provider=secret_provider,
        secret_dir=Path(secret_dir) if secret_dir else None,
        query_timeout_seconds=positive_int('QUERY_TIMEOUT_SECONDS', 30),
        connect_timeout_seconds=positive_int('CONNECT_TIMEOUT_SECONDS', 10),
        single_flight_lock=boolean('SINGLE_FLIGHT_LOCK', True),
        clock_source=choice('CLOCK_SOURCE', 'local', CLOCK_SOURCES),
        audit_log_prefix=value('AUDIT_LOG_PREFIX', 'changes'),
        audit_fsync=boolean('AUDIT_FSYNC', True),
        log_level=value('LOG_LEVEL', 'INFO').upper(),
        log_file=value('LOG_FILE', 'logs/table_monitor.log'),
    )

    if invalid:
        raise ConfigInvalid(f"Invalid configuration values: {', '.join(invalid)}", invalid)

    return config
