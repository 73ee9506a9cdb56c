# Utils - Shared utilities

from utils.logging import get_logger, operation_context, setup_logging
from utils.time import ms_to_iso_date, now_ms

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "operation_context",
    # Time
    "now_ms",
    "ms_to_iso_date",
]
