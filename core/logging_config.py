"""
Centralized logging configuration for the nearby chat client.

Console lines go to stderr so they never interleave with the chat transcript on
stdout. Production runs (ENVIRONMENT=production) log JSON; development runs log
colored one-liners. Context travels as extra={"extra_data": {...}}.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Transport libraries are chatty at DEBUG (every ping/pong frame)
QUIET_LOGGERS = ("socketio", "engineio", "aiohttp", "asyncio")


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}:{record.lineno}",
            **_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """[HH:MM:SS] [LEVEL] [logger] message | key=value ..."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[95m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = f"{self.COLORS.get(record.levelname, '')}{record.levelname}{self.RESET}"
        line = f"[{stamp}] [{level}] [{record.name}] {record.getMessage()}"

        context = _context(record)
        if context:
            line += " | " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class LoggingConfig:
    """Applies a LOGGING_CONFIG-style dict to the root logger"""

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = True,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = Path(log_dir or "./logs")
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_bytes = max_log_size_mb * 1024 * 1024
        self.backup_count = backup_count

    def configure(self) -> None:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(self.log_level)

        if self.enable_console_logging:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(StructuredFormatter() if self.structured_logging
                                         else ColoredConsoleFormatter())
            root_logger.addHandler(console_handler)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_formatter = StructuredFormatter() if self.structured_logging else logging.Formatter(
                '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
            # Full session log plus an errors-only log for crash reports
            for filename, level in (("nearby_chat.log", self.log_level), ("errors.log", logging.ERROR)):
                handler = logging.handlers.RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=self.max_bytes,
                    backupCount=self.backup_count,
                    encoding='utf-8'
                )
                handler.setLevel(level)
                handler.setFormatter(file_formatter)
                root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(logging.WARNING, self.log_level))


_logging_config: Optional[LoggingConfig] = None


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> LoggingConfig:
    """
    Configure logging from LOGGING_CONFIG, with config_dict entries taking precedence.

    Calling it again reconfigures the root logger.
    """
    global _logging_config
    from config import LOGGING_CONFIG

    _logging_config = LoggingConfig(**{**LOGGING_CONFIG, **(config_dict or {})})
    _logging_config.configure()
    return _logging_config


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; configures logging on first use"""
    if _logging_config is None:
        setup_logging()
    return logging.getLogger(name)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context) -> None:
    """Log an error with its type and the operation it interrupted"""
    logger.error(f"Error in {operation}: {error}", extra={"extra_data": {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        **context,
    }})
