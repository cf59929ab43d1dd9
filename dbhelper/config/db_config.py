"""
Database configuration settings.

Connection settings for every named database, the production -> test name
mapping used in test mode, and optional logging settings. Configuration is
read from a YAML (or JSON) file and validated with pydantic.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.engine import URL, make_url

from ..security import IDENTIFIER_QUOTES

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'DBHELPER_CONFIG'
DEFAULT_CONFIG_PATH = Path('config') / 'database.yaml'

CONFIG_DEFAULT = 'default'
CONFIG_OTHER = 'other'
CONFIG_DEFAULT_TEST = 'default_test'
CONFIG_OTHER_TEST = 'other_test'

SERVER_PLACEHOLDER = '{server}'


class ConfigurationError(ValueError):
    """Raised when database configuration is missing or invalid."""
    pass


class DatabaseSettings(BaseModel):
    """Connection settings for one named database."""

    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    name: Optional[str] = None
    host: str = 'localhost'
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = Field(default=None, alias='pass')
    driver: str = 'mysql+pymysql'
    charset: Optional[str] = 'utf8'
    url: Optional[str] = None
    identifier_quote: str = '`'
    engine_args: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('identifier_quote')
    @classmethod
    def _known_quote(cls, value: str) -> str:
        if value not in IDENTIFIER_QUOTES:
            raise ValueError(f"identifier_quote must be one of {sorted(IDENTIFIER_QUOTES)}")
        return value

    def connection_url(self, server: Optional[str] = None) -> URL:
        """
        Build the SQLAlchemy URL for this database.

        Args:
            server: Value substituted for '{server}' in the host pattern
                (or in an explicit url)

        Returns:
            SQLAlchemy URL
        """
        if self.url:
            url = self.url
            if server is not None:
                url = url.replace(SERVER_PLACEHOLDER, server)
            return make_url(url)

        if not self.name:
            raise ConfigurationError("Database settings need either 'url' or 'name'")

        host = self.host
        if server is not None:
            # for databases spread over several servers
            host = host.replace(SERVER_PLACEHOLDER, server)

        query = {'charset': self.charset} if self.charset else {}
        return URL.create(
            self.driver,
            username=self.user,
            password=self.password,
            host=host,
            port=self.port,
            database=self.name,
            query=query,
        )


class LoggingSettings(BaseModel):
    """Logging section of the configuration."""

    level: str = 'INFO'
    log_file: Optional[str] = None

    @field_validator('level')
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown log level: {value}")
        return level


class RegistryConfig(BaseModel):
    """Complete configuration consumed by the connection registry."""

    databases: Dict[str, DatabaseSettings] = Field(default_factory=dict)
    test_databases: Dict[str, str] = Field(
        default_factory=lambda: {CONFIG_DEFAULT: CONFIG_DEFAULT_TEST}
    )
    logging: Optional[LoggingSettings] = None

    def get_database(self, db_name: str) -> DatabaseSettings:
        """
        Get settings for a named database.

        Raises:
            ConfigurationError: If the name is not configured
        """
        try:
            return self.databases[db_name]
        except KeyError:
            raise ConfigurationError(f"No configuration for database '{db_name}'") from None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'RegistryConfig':
        """
        Build configuration from a plain mapping.

        Accepts either the sectioned layout ('databases', 'test_databases',
        'logging') or a flat mapping of database name -> settings.

        Raises:
            ConfigurationError: If validation fails
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")

        if 'databases' not in data:
            data = {'databases': dict(data)}

        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid database configuration: {e}") from e


def get_config_path(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the configuration file path (argument, env var, default)."""
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_database_config(config_path: Optional[Union[str, Path]] = None) -> RegistryConfig:
    """
    Load and validate the database configuration file.

    JSON files load through the YAML parser as well.

    Args:
        config_path: Path to the YAML/JSON file; defaults to $DBHELPER_CONFIG,
            then config/database.yaml

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = get_config_path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Database config not found: {path}")

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse database config {path}: {e}")
        raise ConfigurationError(f"Failed to parse database config {path}: {e}") from e

    logger.debug(f"Loaded database config from {path}")
    return RegistryConfig.from_mapping(data or {})
