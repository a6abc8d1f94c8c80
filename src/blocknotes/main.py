#!/usr/bin/env python
"""Main entry point for the BlockNotes MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from blocknotes import __version__
from blocknotes.config import config
from blocknotes.models.db_models import init_db
from blocknotes.observability import configure_logging
from blocknotes.server.mcp_server import BlockNotesMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="BlockNotes MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("BLOCKNOTES_DATABASE_PATH")
    )
    parser.add_argument(
        "--in-memory",
        help="Keep everything in an in-memory database (nothing is persisted)",
        action="store_true",
    )
    parser.add_argument(
        "--offline",
        help="Start with the connectivity signal reporting offline",
        action="store_true",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("BLOCKNOTES_LOG_LEVEL", "INFO")
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.in_memory:
        config.in_memory_db = True
    if args.offline:
        config.start_online = False


def main(argv=None):
    """Run the BlockNotes MCP server."""
    args = parse_args(argv)
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.get_log_dir(), level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db(config)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting BlockNotes MCP server")
        server = BlockNotesMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
