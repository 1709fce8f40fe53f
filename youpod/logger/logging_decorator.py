"""
Centralized Logging Utilities and Decorators

Provides the logging setup shared by the ledger, ingestion, feed and
pipeline modules of youpod.

Usage:
    from youpod.logger import setup_logging, log_function

    # Setup logging for a CLI entry point
    logger = setup_logging(
        logger_name="youpod.pipeline",
        log_file="logs/pipeline.log",
        verbose=True
    )

    # Decorate long-running operations
    @log_function(logger_name="youpod.pipeline")
    def run_download_stage(config, options):
        ...
"""

import functools
import logging
import time
from pathlib import Path
from typing import Optional, Callable, Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    logger_name: str,
    log_file: str = "logs/youpod.log",
    verbose: bool = False,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Set up a logger writing to a file, with an optional console handler.

    Child loggers (``youpod.ledger.store`` under ``youpod``) propagate to the
    configured logger, so configuring the package root once at the CLI is
    enough for every module.

    Args:
        logger_name: Name for the logger (e.g., "youpod.pipeline")
        log_file: Path to log file (default: "logs/youpod.log")
        verbose: If True, also log DEBUG messages to the console
        level: Base logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Already configured by an earlier call
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else level)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter("DEBUG: %(message)s"))
        logger.addHandler(console_handler)

    return logger


def log_function(
    logger_name: Optional[str] = None,
    level: int = logging.INFO,
    log_args: bool = False,
    log_result: bool = False,
    log_execution_time: bool = True,
) -> Callable:
    """
    Decorator logging function entry, exit, execution time and exceptions.

    Exceptions are logged with their traceback and re-raised unchanged.

    Args:
        logger_name: Logger to use (defaults to the decorated function's module)
        level: Log level for entry/exit messages (default: logging.INFO)
        log_args: If True, log function arguments
        log_result: If True, log the return value
        log_execution_time: If True, log execution duration

    Returns:
        Decorated function with logging

    Example:
        @log_function(logger_name="youpod.ingestion", log_args=True)
        def fetch_listing(feed_url):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = logger_name or func.__module__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = logging.getLogger(name)
            func_name = func.__qualname__

            log_msg = f"Calling {func_name}"
            if log_args and (args or kwargs):
                args_repr = [repr(a) for a in args]
                kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
                log_msg += f" with args: {', '.join(args_repr + kwargs_repr)}"
            logger.log(level, log_msg)

            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                execution_time = time.perf_counter() - start_time
                logger.error(
                    f"Exception in {func_name} after {execution_time:.2f}s: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                raise

            completion_msg = f"Completed {func_name}"
            if log_execution_time:
                completion_msg += f" in {time.perf_counter() - start_time:.2f}s"
            if log_result:
                completion_msg += f" with result: {result!r}"
            logger.log(level, completion_msg)

            return result

        return wrapper

    return decorator
