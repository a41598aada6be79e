"""
Logging configuration — central setup for the CLI.

``configure_logging`` is called once at startup by main.py. Every module
that does ``logger = logging.getLogger(__name__)`` inherits its handlers.

Console level precedence:
    --debug  >  --verbose / options 'verbose'  >  --quiet
    >  PROVISIONER_LOG_LEVEL env var  >  WARNING

Log file precedence:
    --log-file  >  options 'log_file'  >  PROVISIONER_LOG_FILE

The file handler records DEBUG (every command run) unless
PROVISIONER_LOG_FILE_LEVEL says otherwise.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV = "PROVISIONER_LOG_LEVEL"
LOG_FILE_ENV = "PROVISIONER_LOG_FILE"
LOG_FILE_LEVEL_ENV = "PROVISIONER_LOG_FILE_LEVEL"

# Console formats by level; quiet runs show the bare message
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> str:
    """Console level name from the CLI flags, then the environment.

    ``verbose`` should already include the options file's ``verbose``.
    """
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LOG_LEVEL_ENV, "WARNING")


def resolve_log_file(cli_value: str | None, config_value: str | None) -> str | None:
    """First non-empty of --log-file, options 'log_file', $PROVISIONER_LOG_FILE."""
    for candidate in (cli_value, config_value, os.environ.get(LOG_FILE_ENV)):
        if candidate:
            return os.path.expanduser(candidate)
    return None


def configure_logging(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    log_file: str | None = None,
    config_log_file: str | None = None,
) -> None:
    """Resolve CLI flags, options and environment, then set up logging."""
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=resolve_log_file(log_file, config_log_file),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
    )


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install a stderr handler and, optionally, a file handler on the root logger.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional path; parent directories are created.
        log_file_level: Level for the file. Defaults to DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level, default=logging.DEBUG)
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _console_format(level: int) -> tuple[str, str | None]:
    for threshold in sorted(_CONSOLE_FORMATS):
        if level <= threshold:
            return _CONSOLE_FORMATS[threshold]
    return "%(message)s", None


def _parse_level(level: str | None, default: int = logging.WARNING) -> int:
    if not level:
        return default
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else default
