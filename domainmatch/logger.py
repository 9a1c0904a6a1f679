"""
Structured logging for domainmatch.

Wraps the standard logging module with console and file outputs,
JSON-rendered context and simple counters for monitoring how matches
and home-page fetches behave.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Logger with console and optional file output.
    Tracks metrics about matches and home-page fetches.
    """

    def __init__(
        self,
        name: str = "domainmatch",
        level: str = "WARNING",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if enable_file else getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        self.metrics = {
            "matches": 0,
            "fetches_attempted": 0,
            "fetches_successful": 0,
            "fetches_failed": 0,
            "errors_by_type": {},
            "tests_passed": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"domainmatch_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if not self.logger.isEnabledFor(level):
            return
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_match(self, passed):
        """Count a finished match and the tests that passed in it."""
        self.metrics["matches"] += 1
        for test in passed:
            name = getattr(test, "value", str(test))
            self.metrics["tests_passed"][name] = self.metrics["tests_passed"].get(name, 0) + 1

    def record_fetch_attempt(self):
        self.metrics["fetches_attempted"] += 1

    def record_fetch_success(self):
        self.metrics["fetches_successful"] += 1

    def record_fetch_failure(self, error_type: str):
        """Record a failed fetch, keyed by error type."""
        self.metrics["fetches_failed"] += 1

        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics, with the fetch success rate filled in."""
        metrics_copy = dict(self.metrics)
        attempts = metrics_copy["fetches_attempted"]
        if attempts > 0:
            metrics_copy["fetch_success_rate"] = round(
                metrics_copy["fetches_successful"] / attempts, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Match Session Metrics ===")
        self.info(f"Matches: {metrics['matches']}")
        self.info(
            f"Fetches: {metrics['fetches_successful']}/{metrics['fetches_attempted']}"
            f" ({metrics.get('fetch_success_rate', 0) * 100:.1f}% success)"
        )

        if metrics["tests_passed"]:
            self.info("Tests passed:")
            for test, count in metrics["tests_passed"].items():
                self.info(f"  {test}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "domainmatch",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level and log directory default to DOMAINMATCH_LOG_LEVEL and
    DOMAINMATCH_LOG_DIR; a file handler is only added when a log
    directory is configured.

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        log_dir = os.getenv("DOMAINMATCH_LOG_DIR")
        if log_dir:
            kwargs.setdefault("log_dir", Path(log_dir))
            kwargs.setdefault("enable_file", True)
        level = level or os.getenv("DOMAINMATCH_LOG_LEVEL", "WARNING")
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
