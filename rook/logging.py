"""Logging setup for the gateway and its per-request access log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

ROOT_LOGGER = "rook"
ACCESS_LOGGER = f"{ROOT_LOGGER}.access"

# Common Log Format timestamp, e.g. 10/Oct/2000:13:55:36 +0000
CLF_TIME_FORMAT = "%d/%b/%Y:%H:%M:%S %z"

_CONSOLE_FORMAT = "[rook] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class AccessRecord:
    """What the access log knows about one finished request."""

    client: str
    method: str
    path: str
    http_version: str
    status: Optional[int]
    finished: datetime
    elapsed_us: int

    def clf(self) -> str:
        """Render in Common Log Format with a trailing timing field."""
        status = "-" if self.status is None else str(self.status)
        return (
            f'{self.client} - - [{self.finished.strftime(CLF_TIME_FORMAT)}] '
            f'"{self.method} {self.path} HTTP/{self.http_version}" {status} - {self.elapsed_us}µs'
        )


class AccessLogFormatter(logging.Formatter):
    """Formats records carrying an ``access`` attribute as CLF lines."""

    def format(self, record: logging.LogRecord) -> str:
        access = getattr(record, "access", None)
        if isinstance(access, AccessRecord):
            return access.clf()
        return super().format(record)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``rook`` or one of its children."""
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_access(record: AccessRecord) -> None:
    logging.getLogger(ACCESS_LOGGER).info(
        "%s %s -> %s", record.method, record.path, record.status, extra={"access": record}
    )


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console (and optional file) handlers.

    Diagnostic lines go through ``rook`` at INFO, or DEBUG when verbose.
    Access lines always go through ``rook.access`` in Common Log Format, to the
    same destinations but with their own formatter.
    """
    level = logging.DEBUG if verbose else logging.INFO

    logger = _reset(logging.getLogger(ROOT_LOGGER), level)
    for handler in _sinks(log_file):
        if isinstance(handler, logging.FileHandler):
            handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        else:
            handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(handler)

    access = _reset(logging.getLogger(ACCESS_LOGGER), logging.INFO)
    for handler in _sinks(log_file):
        handler.setFormatter(AccessLogFormatter())
        access.addHandler(handler)

    return logger


def _reset(logger: logging.Logger, level: int) -> logging.Logger:
    # Repeated configuration must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _sinks(log_file: Path | None) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers


__all__ = [
    "ACCESS_LOGGER",
    "AccessLogFormatter",
    "AccessRecord",
    "configure_logging",
    "get_logger",
    "log_access",
]
