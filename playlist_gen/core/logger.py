"""
Logging configuration for playlist-gen.

This module sets up the logging system with multiple outputs:
    - Console: Real-time progress with tqdm-compatible, colored formatting
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - criteria_failures_<timestamp>.log: Smart labels whose criteria could
      not be applied during a push

Usage:
    from playlist_gen.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Pulling favorites")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# ANSI color codes
class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking tqdm progress bars.

    Uses tqdm.write(), which prints above any active progress bar instead of
    interleaving with its carriage-return updates.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class CriteriaFailureHandler(logging.Handler):
    """
    Handler that captures smart labels skipped during a push.

    This handler listens for log records that carry criteria failure
    information and writes them to criteria_failures.log in a simple,
    human-readable format:

        Label: Chill
        Criteria: genre ~ "lofi" and
        Reason: Unexpected end of criteria

    The handler looks for specific extra fields in log records:
        - 'criteria_failed_label': The label name
        - 'criteria_failed_text': The stored criteria string
        - 'criteria_failed_reason': Why it could not be applied

    Only records containing these fields are written to the report.
    Use log_criteria_failure() to emit such records.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "criteria_failed_label"):
            return

        if self.report_file is None:
            return

        try:
            label = getattr(record, "criteria_failed_label", "Unknown")
            criteria = getattr(record, "criteria_failed_text", "")
            reason = getattr(record, "criteria_failed_reason", "")

            self.acquire()
            try:
                self.report_file.write(f"Label: {label}\n")
                self.report_file.write(f"Criteria: {criteria}\n")
                self.report_file.write(f"Reason: {reason}\n\n")
                self.report_file.flush()
            finally:
                self.release()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created (created if missing).
        verbose: If True, the console also shows DEBUG records.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Configure root logger level to DEBUG
        3. Console handler (TqdmLoggingHandler), INFO or DEBUG
        4. Full log file handler, DEBUG
        5. Error-only log file handler (ErrorOnlyFilter)
        6. Criteria failure report handler

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before starting any worker threads.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(
        log_dir / f"log_full_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        log_dir / f"log_errors_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    criteria_handler = CriteriaFailureHandler(log_dir / f"criteria_failures_{timestamp}.log")
    criteria_handler.open()
    root_logger.addHandler(criteria_handler)

    # spotipy and urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("spotipy").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def format_label_message(label_name: str, track_count: int, playlist_id: str) -> str:
    """
    Format a 'Pushed' message with colors.

    Args:
        label_name: Name of the label that was pushed.
        track_count: Number of tracks now in the playlist.
        playlist_id: Spotify playlist ID.
    """
    return (
        f"{Colors.GREEN}Pushed{Colors.RESET}: "
        f"{label_name} ({track_count} tracks) -> "
        f"{Colors.CYAN}spotify:playlist:{playlist_id}{Colors.RESET}"
    )


def log_criteria_failure(
    logger: logging.Logger,
    label_name: str,
    criteria: str,
    reason: str
) -> None:
    """
    Log a smart label whose criteria could not be applied.

    The record goes to the console and error log like any other ERROR, and
    is also picked up by CriteriaFailureHandler for the failure report.

    Args:
        logger: Logger of the calling module.
        label_name: Name of the smart label.
        criteria: The stored criteria string.
        reason: Human-readable reason (compile or query failure).
    """
    logger.error(
        f"Skipping smart label '{label_name}': {reason}",
        extra={
            "criteria_failed_label": label_name,
            "criteria_failed_text": criteria,
            "criteria_failed_reason": reason,
        }
    )


def shutdown_logging() -> None:
    """
    Properly shut down the logging system.

    Flushes and closes every handler on the root logger, then removes them.
    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
