# src/gitgrope/cli.py

import argparse
import asyncio
import os
import signal
from typing import List, Optional

from gitgrope import __version__, log_utils
from gitgrope.config import Config, load_config
from gitgrope.constants import DEFAULT_CONFIG_FILE, LOG_FORMAT_JSON, LOG_LEVEL_ENV_VAR
from gitgrope.exceptions import ConfigurationError
from gitgrope.scheduler import Scheduler
from gitgrope.watcher import RepositoryWatcher


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitgrope",
        description="Watch GitHub repositories for new releases, download their assets and run tasks against them.",
    )
    parser.add_argument(
        "--config-file",
        default=DEFAULT_CONFIG_FILE,
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR); overrides the configuration file",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process every repository once and exit",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _configure_logging(config: Config, cli_level: Optional[str]) -> None:
    """
    Apply the effective log level and sink.

    Precedence for the level: command line, then the environment variable,
    then the configuration file. A configured log file becomes the only sink.
    """
    level = cli_level
    if level is None and LOG_LEVEL_ENV_VAR not in os.environ:
        level = config.log_level
    if level:
        log_utils.set_log_level(level)

    if config.log_file:
        log_utils.add_file_logging(
            config.log_file,
            level_name=level or os.environ.get(LOG_LEVEL_ENV_VAR, "INFO"),
            json_format=config.log_format == LOG_FORMAT_JSON,
        )


def _install_signal_handlers(scheduler: Scheduler) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        log_utils.logger.info(
            "received shutdown signal. waiting for any groping to end..."
        )
        scheduler.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal)
        except (NotImplementedError, RuntimeError):
            # Event loops without signal support (Windows)
            signal.signal(sig, lambda *_args: loop.call_soon_threadsafe(_on_signal))


async def _serve(config: Config) -> int:
    watchers = [RepositoryWatcher(repository) for repository in config.repositories]
    scheduler = Scheduler(
        watchers,
        poll_seconds=config.poll_seconds,
        max_concurrent=config.max_concurrent_repos,
        shutdown_grace=config.shutdown_grace,
        fire_once=config.fire_once,
    )
    _install_signal_handlers(scheduler)

    if config.fire_once:
        log_utils.logger.info(
            f"Processing {len(watchers)} repositories once (fire_once)"
        )
    else:
        log_utils.logger.info(
            f"Watching {len(watchers)} repositories every {config.poll_seconds}s; "
            "waiting for stop signal..."
        )
    try:
        await scheduler.run()
    finally:
        await config.close()
    log_utils.logger.info("gitgrope stopped")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command-line entry point.

    Loads and applies the configuration, then polls until SIGINT/SIGTERM (or
    after a single pass in fire-once mode).

    Returns:
        int: 0 on clean shutdown, 1 when the configuration is rejected.
    """
    args = _build_parser().parse_args(argv)

    if args.log_level:
        log_utils.set_log_level(args.log_level)

    try:
        config = load_config(args.config_file)
    except ConfigurationError as e:
        log_utils.logger.error(f"error loading configuration file: {e}")
        return 1

    _configure_logging(config, args.log_level)
    if args.once:
        config.fire_once = True

    try:
        config.apply()
    except ConfigurationError as e:
        log_utils.logger.error(str(e))
        return 1

    return asyncio.run(_serve(config))


if __name__ == "__main__":
    raise SystemExit(main())
