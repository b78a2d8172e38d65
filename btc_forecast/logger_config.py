"""
Logging Configuration for the Bitcoin Return Forecasting Report

Provides centralized logging setup with module-specific loggers. Console
output is colored by level, file output is plain; both use UTC ISO 8601
timestamps.

Format: [TIMESTAMP] [LEVEL] [MODULE] - MESSAGE
Example: [2026-01-15T18:48:45.262Z] [INFO] [arima] - Selected ARIMA(1, 0, 1) with AIC=-11873.2041
"""

import logging
import traceback
from datetime import datetime, timezone
from pathlib import Path


_logger_instances = {}

VALID_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

# Libraries that log every optimizer iteration at INFO
NOISY_LOGGERS = ['cmdstanpy', 'prophet', 'prophet.plot', 'yfinance', 'tensorflow', 'absl']


class UTCFormatter(logging.Formatter):
    """Formatter with UTC ISO 8601 timestamps and optional level colors."""

    _COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    _RESET = '\033[0m'

    def __init__(self, use_color=False):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        timestamp = datetime.fromtimestamp(
            record.created,
            tz=timezone.utc
        ).isoformat(timespec='milliseconds').replace('+00:00', 'Z')

        # "btc_forecast.models.arima" -> "arima"
        module_name = record.name.rsplit('.', 1)[-1] or "root"

        level = f"[{record.levelname}]"
        if self.use_color:
            level = f"{self._COLORS.get(record.levelname, '')}{level}{self._RESET}"

        message = f"[{timestamp}] {level} [{module_name}] - {record.getMessage()}"
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message += "\n" + record.exc_text
        return message


def configure_logging(log_level='INFO', log_file=None):
    """
    Setup centralized logging configuration.

    Configures the root logger with a colored console handler and, when
    log_file is given, a plain-text file handler.

    Args:
        log_level (str): Logging level - DEBUG, INFO, WARNING, ERROR, CRITICAL
        log_file (str, optional): Path to log file. Parent directories are
                                 created as needed.

    Returns:
        logging.Logger: Configured root logger instance

    Raises:
        ValueError: If log_level is invalid

    Example:
        >>> logger = configure_logging(log_level='DEBUG', log_file='output/run.log')
        >>> logger.info("Report started")
    """
    if not isinstance(log_level, str) or log_level.upper() not in VALID_LEVELS:
        raise ValueError(
            f"Invalid log_level '{log_level}'. Must be one of: {', '.join(VALID_LEVELS)}"
        )
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on repeated calls
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(UTCFormatter(use_color=True))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(UTCFormatter(use_color=False))
        root_logger.addHandler(file_handler)

    silence_noisy_loggers()

    root_logger.info(
        f"Logging configured: level={log_level.upper()}, "
        f"file={log_file if log_file else 'console only'}"
    )
    return root_logger


def silence_noisy_loggers(level=logging.WARNING):
    """Raise the threshold of third-party loggers that flood the report."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def get_logger(module_name):
    """
    Get a module-specific logger.

    Each module calls this at import time:
        logger = get_logger(__name__)

    Args:
        module_name (str): Name of the module (typically __name__)

    Returns:
        logging.Logger: Logger instance that propagates to the root handlers
    """
    if module_name in _logger_instances:
        return _logger_instances[module_name]

    logger = logging.getLogger(module_name)
    logger.propagate = True

    _logger_instances[module_name] = logger
    return logger


def log_exception(logger, exception):
    """
    Log full exception details including traceback at ERROR level.

    Example:
        >>> try:
        ...     handle = adapter.fit(train)
        ... except ConvergenceError as e:
        ...     log_exception(logger, e)
        ...     raise
    """
    tb_str = traceback.format_exc()
    logger.error(
        f"Exception occurred: {type(exception).__name__}\n"
        f"Message: {str(exception)}\n"
        f"Traceback:\n{tb_str}"
    )
