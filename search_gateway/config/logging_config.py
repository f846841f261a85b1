# search_gateway/config/logging_config.py

"""Per-run logging for the search gateway.

A process writes one log file per launch, ``logs/run_<YYYYMMDD_HHMMSS>.log``.
Every ``search_gateway.*`` logger (cache, breaker, coalescer, executors,
gateway) propagates into it. The stderr console only shows records at
``Settings.CONSOLE_LOG_LEVEL`` and above so JSON on stdout stays clean.

Executors run on worker threads, so the file format carries the thread
name next to the module location.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from search_gateway.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_STDERR_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_TIMESTAMP = "%Y-%m-%d %H:%M:%S"


def _handler(
    handler: logging.Handler, level: int | str, fmt: str,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_TIMESTAMP))
    return handler


def setup_logging(logs_dir: Path | None = None) -> Path:
    """Attach the run-file and stderr handlers to ``search_gateway``.

    Safe to call more than once: when the project logger already has
    handlers nothing new is attached.

    Args:
        logs_dir: Where the run log goes. Defaults to ``Settings.LOGS_DIR``.

    Returns:
        Path of this run's log file.
    """
    target = logs_dir or Settings.LOGS_DIR
    target.mkdir(parents=True, exist_ok=True)
    run_log = target / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    project_logger = logging.getLogger("search_gateway")
    project_logger.setLevel(logging.DEBUG)
    if project_logger.handlers:
        return run_log

    project_logger.addHandler(
        _handler(
            logging.FileHandler(run_log, encoding="utf-8"),
            logging.DEBUG,
            _FILE_FORMAT,
        )
    )
    project_logger.addHandler(
        _handler(
            logging.StreamHandler(sys.stderr),
            Settings.CONSOLE_LOG_LEVEL,
            _STDERR_FORMAT,
        )
    )
    project_logger.info("Run log: %s", run_log)
    return run_log
