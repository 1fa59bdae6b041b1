"""
External Source Server Entry Point
Run with: python server.py
"""

import logging
import sys

from config import DatabaseConfig, ServerConfig, SourceConfig, create_env_file, load_app_environment
from container import SourceContainer

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging(server_config: ServerConfig):
    """Root logging setup, level driven by LOG_MODE"""
    logging.basicConfig(
        level=server_config.log_level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def cli_entry():
    """Entry point for console script"""
    import argparse

    parser = argparse.ArgumentParser(description="Deep Intelligence External Source Server")
    parser.add_argument('--version', '-v', action='store_true', help='Show version')
    parser.add_argument('--host', type=str, default=None, help='Host to bind (default: HTTP_HOST or 0.0.0.0)')
    parser.add_argument('--port', type=int, default=None, help='Port to listen on (default: HTTP_PORT / SSL_PORT)')
    parser.add_argument('--env', type=str, default=None, help='Environment mode (development, test, production)')
    parser.add_argument('--create-env', action='store_true', help='Write a template .env file and exit')

    args = parser.parse_args()

    if args.version:
        print(f"deepint-source-server version {__version__}")
        sys.exit(0)

    if args.create_env:
        create_env_file()
        sys.exit(0)

    mode = load_app_environment(args.env)
    server_config = ServerConfig.from_environment(mode)
    configure_logging(server_config)

    source_config = SourceConfig.from_environment(mode)
    if not source_config.fields:
        logger.error("SOURCE_FIELDS is empty, nothing to expose")
        sys.exit(1)

    container = SourceContainer(DatabaseConfig.from_environment(mode), source_config)

    from transport.http import run_http_server
    run_http_server(container, server_config, host=args.host, port=args.port)


if __name__ == "__main__":
    cli_entry()
