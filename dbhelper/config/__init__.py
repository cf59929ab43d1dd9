"""
Database configuration management.

This module handles dbhelper configuration:
- Named database connection settings
- Test-mode database name mapping
- Logging configuration
"""

from .db_config import (
    CONFIG_DEFAULT,
    CONFIG_DEFAULT_TEST,
    CONFIG_OTHER,
    CONFIG_OTHER_TEST,
    ConfigurationError,
    DatabaseSettings,
    LoggingSettings,
    RegistryConfig,
    load_database_config,
)
from .logging_config import setup_db_logging, DatabaseLoggerAdapter

__all__ = [
    'CONFIG_DEFAULT',
    'CONFIG_DEFAULT_TEST',
    'CONFIG_OTHER',
    'CONFIG_OTHER_TEST',
    'ConfigurationError',
    'DatabaseSettings',
    'LoggingSettings',
    'RegistryConfig',
    'load_database_config',
    'setup_db_logging',
    'DatabaseLoggerAdapter',
]
