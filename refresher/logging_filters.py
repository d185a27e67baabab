"""Logging helpers and filters.

Applied from both entrypoints (`python -m refresher.main` and
`uvicorn refresher.asgi:app`).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

NOISY_LOGGERS = ("boto3", "botocore", "urllib3", "s3transfer", "aiosqlite")


class SuppressHealthCheckAccessLog(logging.Filter):
    """Drop Uvicorn access log records for the health check endpoint.

    Orchestrators poll /health every few seconds; access logs for every
    other route are kept.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        # Uvicorn's access logger passes
        #   (client_addr, method, full_path, http_version, status_code)
        args: Any = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2])
            return not (path == "/health" or path.startswith("/health?"))

        message = record.getMessage()
        return '"GET /health ' not in message and '"HEAD /health ' not in message


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging to stdout and quiet chatty client libraries."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def install_uvicorn_access_log_filters() -> None:
    """Install filters for Uvicorn loggers.

    Safe to call multiple times.
    """
    access_logger = logging.getLogger("uvicorn.access")

    for existing in access_logger.filters:
        if isinstance(existing, SuppressHealthCheckAccessLog):
            return

    access_logger.addFilter(SuppressHealthCheckAccessLog())
