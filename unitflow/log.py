"""Logging setup and run-log capture."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "unitflow"
SCRIPT_LOGGER = "unitflow.scripts"


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Install a rich handler on the package logger. Called once by the CLI."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.addHandler(
        RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=verbose,
        )
    )
    logger.propagate = False


class RunLogHandler(logging.Handler):
    """Collects timestamped messages for the remote run log.

    Attach to the package logger for the duration of a run, then hand
    :meth:`text` to the log sink.
    """

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self.lines: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stamp = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
            self.lines.append(f"{stamp} {record.levelname.lower()}: {record.getMessage()}")
        except Exception:
            self.handleError(record)

    def text(self) -> str:
        return "\n".join(self.lines)
