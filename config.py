"""
Configuration for the external source server
Database, source schema / credentials and HTTP server settings
Environment-aware configuration based on APP_ENV
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]

DEFAULT_DEEPINT_URL = "https://app.deepint.net/api/v1/"


def load_app_environment(mode: Optional[str] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} if it exists, then .env. Variables already set in the
    process environment always win.
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    base_path = Path(__file__).parent
    for env_file in (base_path / f'.env.{mode}', base_path / '.env'):
        if env_file.exists():
            load_dotenv(env_file, override=False)

    return mode


def _split_list(value: Optional[str]) -> list[str]:
    """Comma separated list, empty entries dropped"""
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ''))
    except ValueError:
        return default


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration"""

    host: str
    port: int
    database: str
    user: str
    password: str
    table: str

    # Connection pool settings
    min_pool_size: int = 1
    max_pool_size: int = 4
    command_timeout: int = 60  # seconds

    ssl_mode: str = "prefer"

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DatabaseConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - DB_HOST: Database host (default: localhost)
        - DB_PORT: Database port (default: 5432)
        - DB_NAME: Database name (default: test)
        - DB_USER: Database user (default: postgres)
        - DB_PASSWORD: Database password
        - DB_TABLE: Table exposed as the source (default: iris)
        - DB_SSL_MODE: SSL mode (default: prefer)
        - DB_MIN_POOL_SIZE / DB_MAX_POOL_SIZE: Pool bounds (default: 1 / 4)
        - DB_COMMAND_TIMEOUT: Statement timeout in seconds (default: 60)
        """
        load_app_environment(mode)

        config = cls(
            host=os.getenv('DB_HOST', 'localhost'),
            port=_int_env('DB_PORT', 5432),
            database=os.getenv('DB_NAME', 'test'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            table=os.getenv('DB_TABLE', 'iris'),
            ssl_mode=os.getenv('DB_SSL_MODE', 'prefer'),
            min_pool_size=_int_env('DB_MIN_POOL_SIZE', 1),
            max_pool_size=_int_env('DB_MAX_POOL_SIZE', 4),
            command_timeout=_int_env('DB_COMMAND_TIMEOUT', 60),
        )
        if config.min_pool_size > config.max_pool_size:
            config.min_pool_size = config.max_pool_size
        return config


@dataclass
class SourceConfig:
    """
    Source schema and Deep Intelligence credentials.

    Environment Variables:
    - SOURCE_FIELDS: Comma separated feature names, in table order
    - SOURCE_FIELDS_TYPES: Comma separated feature types (nominal, numeric, date, logic, text)
    - SOURCE_PUB_KEY / SOURCE_SECRET_KEY: Credentials shared with Deep Intelligence
    - DEEPINT_API_URL: Base URL of the Deep Intelligence API
    """
    fields: list[str] = field(default_factory=list)
    field_types: list[str] = field(default_factory=list)
    public_key: str = ""
    secret_key: str = ""
    deepint_url: str = DEFAULT_DEEPINT_URL

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> "SourceConfig":
        load_app_environment(mode)
        return cls(
            fields=_split_list(os.getenv("SOURCE_FIELDS")),
            field_types=_split_list(os.getenv("SOURCE_FIELDS_TYPES")),
            public_key=os.getenv("SOURCE_PUB_KEY", ""),
            secret_key=os.getenv("SOURCE_SECRET_KEY", ""),
            deepint_url=os.getenv("DEEPINT_API_URL", DEFAULT_DEEPINT_URL),
        )


@dataclass
class ServerConfig:
    """
    HTTP server settings.

    Environment Variables:
    - HTTP_HOST / HTTP_PORT: Plain HTTP listener (default: 0.0.0.0:80)
    - SSL_PORT, SSL_CERT, SSL_KEY: TLS listener, enabled when cert and key are set
    - API_DOCS: Set to NO to disable the OpenAPI docs
    - LOG_MODE: SILENT, DEFAULT or DEBUG
    """
    host: str = "0.0.0.0"
    http_port: int = 80
    ssl_port: int = 443
    ssl_cert: str = ""
    ssl_key: str = ""
    api_docs: bool = True
    log_mode: str = "DEFAULT"

    @property
    def ssl_enabled(self) -> bool:
        return bool(self.ssl_cert and self.ssl_key)

    @property
    def log_level(self) -> int:
        if self.log_mode == "SILENT":
            return logging.WARNING
        if self.log_mode == "DEBUG":
            return logging.DEBUG
        return logging.INFO

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> "ServerConfig":
        load_app_environment(mode)
        log_mode = os.getenv("LOG_MODE", "DEFAULT").upper()
        if log_mode not in ("SILENT", "DEBUG"):
            log_mode = "DEFAULT"
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            http_port=_int_env("HTTP_PORT", 80),
            ssl_port=_int_env("SSL_PORT", 443),
            ssl_cert=os.getenv("SSL_CERT", ""),
            ssl_key=os.getenv("SSL_KEY", ""),
            api_docs=os.getenv("API_DOCS", "").upper() != "NO",
            log_mode=log_mode,
        )


# Example .env file content
ENV_TEMPLATE = """
# Application Environment
APP_ENV=development

# HTTP server
HTTP_PORT=80
SSL_PORT=443
SSL_CERT=
SSL_KEY=
API_DOCS=YES
LOG_MODE=DEFAULT

# Source schema and credentials
SOURCE_FIELDS=sepallength,sepalwidth,petallength,petalwidth,class
SOURCE_FIELDS_TYPES=numeric,numeric,numeric,numeric,nominal
SOURCE_PUB_KEY=
SOURCE_SECRET_KEY=
DEEPINT_API_URL=https://app.deepint.net/api/v1/

# Database Configuration
DB_HOST=localhost
DB_PORT=5432
DB_NAME=test
DB_USER=postgres
DB_PASSWORD=your_password_here
DB_TABLE=iris
DB_SSL_MODE=prefer
DB_MIN_POOL_SIZE=1
DB_MAX_POOL_SIZE=4
"""


def create_env_file(filepath: str = ".env"):
    """Create a template .env file"""
    with open(filepath, 'w') as f:
        f.write(ENV_TEMPLATE)
    print(f"Created template .env file at {filepath}")
