"""Observability utilities (health snapshot, error log file)."""

from refresher.observability.error_log_file import (
    close_error_log_file,
    setup_error_log_file,
)
from refresher.observability.health_state import (
    HealthSnapshot,
    record_summary,
    snapshot,
)

__all__ = [
    "HealthSnapshot",
    "close_error_log_file",
    "record_summary",
    "setup_error_log_file",
    "snapshot",
]
