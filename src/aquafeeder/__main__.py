"""Command line entry point: ``aquafeeder`` or ``python -m aquafeeder``."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as SettingsError

from aquafeeder import __app_name__, __version__
from aquafeeder.app import main as app_main
from aquafeeder.config.settings import load_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Chatty at INFO: per-request access lines, HTTP client internals, SQL thread.
QUIET_LOGGERS = ("aiohttp.access", "httpx", "httpcore", "telegram", "aiosqlite")


def setup_logging(level: int | str = logging.INFO, log_dir: Path | None = None) -> None:
    """Log to stdout at ``level`` and, if ``log_dir`` is set, everything to a file."""
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "aquafeeder.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="aquafeeder",
        description="Fish feeder backend: telemetry, alerts and scheduled feeding",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Env file with settings (default: .env in the working directory)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Log at DEBUG regardless of LOG_LEVEL",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=Path("logs"),
        help="Directory for the debug log file (default: logs)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except SettingsError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(
        level=logging.DEBUG if args.debug else settings.log_level.upper(),
        log_dir=args.log_dir,
    )
    logger = logging.getLogger(__name__)
    logger.info(f"{__app_name__} {__version__} starting (config: {args.config or '.env'})")

    try:
        asyncio.run(app_main(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info(f"{__app_name__} stopped")


if __name__ == "__main__":
    main()
