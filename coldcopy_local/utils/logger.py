"""
Logging configuration for ColdCopy Local
"""

import logging
import sys
from typing import Optional
from pathlib import Path


# Set once setup_logging has installed handlers
_logging_configured = False


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    force_reconfigure: bool = False
) -> logging.Logger:
    """
    Set up logging configuration for ColdCopy.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        verbose: Include logger names and source locations
        force_reconfigure: Replace handlers even if already configured

    Returns:
        The ``coldcopy`` logger
    """
    global _logging_configured

    if _logging_configured and not force_reconfigure:
        logger = logging.getLogger("coldcopy")
        logger.debug("Logging already configured, skipping setup")
        return logger

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    if verbose:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout carries command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        except OSError as e:
            print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)

    logger = logging.getLogger("coldcopy")
    logger.info(f"Logging initialized at {level} level")

    if log_file:
        logger.info(f"Logging to file: {log_file}")

    _logging_configured = True

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific component.

    Args:
        name: Logger name (will be prefixed with 'coldcopy.')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"coldcopy.{name}")


class LoggerMixin:
    """
    Mixin class to add logging capabilities to other classes.
    """

    @property
    def logger(self) -> logging.Logger:
        class_name = self.__class__.__name__.lower()
        return get_logger(class_name)


def truncate_for_log(text: Optional[str], max_chars: int) -> str:
    """
    Cut text for diagnostic logging.

    Returns an empty string when ``max_chars`` is not positive, otherwise the
    text itself or its first ``max_chars`` characters plus a truncation note.
    """
    s = '' if text is None else str(text)
    try:
        limit = int(max_chars)
    except (TypeError, ValueError):
        return ''
    if limit <= 0:
        return ''
    if len(s) <= limit:
        return s
    return f"{s[:limit]}\n... (truncated, {len(s)} chars total)"


def log_job_start(job_id: int, total_rows: int, settings: dict) -> None:
    """
    Log the start of a bulk job.

    Args:
        job_id: Job identifier
        total_rows: Number of rows queued
        settings: Job generation settings
    """
    logger = get_logger("job")
    logger.info(f"Starting job {job_id} with {total_rows} rows")
    logger.info(f"Tone: {settings.get('tone')} | Length: {settings.get('length')} | "
                f"Follow-ups: {settings.get('followUpCount', 0)}")


def log_job_complete(job_id: int, processed_rows: int, error_count: int) -> None:
    logger = get_logger("job")
    logger.info(f"Job {job_id} completed: {processed_rows} rows processed, {error_count} failed")


def log_row_outcome(job_id: int, row_index: int, status: str, duration: float, error: Optional[str] = None) -> None:
    """
    Log the outcome of one prospect row.

    Args:
        job_id: Job identifier
        row_index: Row index within the job
        status: Final row status
        duration: Processing time in seconds
        error: Error message for failed rows
    """
    logger = get_logger("row")
    if error:
        logger.warning(f"Row {row_index} of job {job_id} {status} in {duration:.2f}s: {error}")
    else:
        logger.info(f"Row {row_index} of job {job_id} {status} in {duration:.2f}s")


def log_error(component: str, error: Exception, context: Optional[dict] = None) -> None:
    """
    Log error with context information.

    Args:
        component: Component where error occurred
        error: Exception instance
        context: Optional context information
    """
    logger = get_logger("error")
    logger.error(f"Error in {component}: {str(error)}")

    if context:
        logger.error(f"Context: {context}")

    logger.debug("Exception details:", exc_info=True)
