"""CLI entry point for SquirrelUp."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from squirrelup import __version__
from squirrelup.backup import run_backup
from squirrelup.config import SquirrelUpConfig, load_config
from squirrelup.errors import BackendError
from squirrelup.logging_config import configure_logging
from squirrelup.progress import LoggingProgressReporter
from squirrelup.storage import create_storage_backend

logger = logging.getLogger("squirrelup")

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "squirrelup" / "config.yaml"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="squirrelup",
        description=(
            "Create a gzip-compressed TAR archive of a directory and upload it "
            "to a storage backend. Only Backblaze B2 is implemented; the output "
            "URI must follow the pattern 'b2://<bucket>/<path>/<to>/<prefix>/'."
        ),
    )
    parser.add_argument("backup_dir", type=Path, help="Local directory that serves as backup root")
    parser.add_argument("output_prefix_uri", help="Remote URI prefix")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help=f"Path to YAML configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output, including upload progress",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def _load(config_path: Path | None) -> SquirrelUpConfig:
    """Load the explicit config file, or the default one if it exists."""
    if config_path is not None:
        logger.info("Loading configuration from %s", config_path)
        return load_config(config_path)
    if DEFAULT_CONFIG_PATH.is_file():
        logger.info("Loading configuration from %s", DEFAULT_CONFIG_PATH)
        return load_config(DEFAULT_CONFIG_PATH)
    logger.info("Configuration file %s does not exist, using environment", DEFAULT_CONFIG_PATH)
    return load_config(None)


async def _run(args: argparse.Namespace, config: SquirrelUpConfig) -> str:
    progress = LoggingProgressReporter() if args.verbose else None
    backend = create_storage_backend(args.output_prefix_uri, config, progress=progress)
    await backend.init()
    try:
        return await run_backup(backend, args.backup_dir, args.output_prefix_uri, config.backup)
    finally:
        await backend.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the SquirrelUp CLI.

    Loads configuration, configures logging and runs one backup. Exits with
    status 1 on any failure.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = _load(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    configure_logging(
        level="DEBUG" if args.verbose else config.logging.level,
        fmt=args.log_format or config.logging.format,
    )

    try:
        target = asyncio.run(_run(args, config))
    except (BackendError, OSError, ValueError) as exc:
        logger.error("Backup of %s failed: %s", args.backup_dir, exc)
        sys.exit(1)

    logger.info("Wrote %s to %s", args.backup_dir, target)


if __name__ == "__main__":
    main()
