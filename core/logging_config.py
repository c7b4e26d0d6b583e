"""
Centralized logging configuration for the lock feed control panel.

Console output is colored in development and JSON in production; both go
through a redaction filter so the account key never reaches a log line,
even when a library echoes a URL or header back in an error message.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set

REDACTED = "[REDACTED]"


class SecretRedactionFilter(logging.Filter):
    """Replaces registered secrets in messages and context data"""

    def __init__(self):
        super().__init__()
        self.secrets: Set[str] = set()

    def add_secret(self, secret: str):
        # Very short values would redact unrelated text
        if secret and len(secret) >= 8:
            self.secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        redacted = self._redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            record.extra_data = {
                key: self._redact(value) if isinstance(value, str) else value
                for key, value in extra_data.items()
            }
        return True

    def _redact(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, REDACTED)
        return text


class StructuredFormatter(logging.Formatter):
    """JSON lines for production log shipping"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_entry["context"] = extra_data

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with colors for development"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[92m',     # Green
        'WARNING': '\033[93m',  # Yellow
        'ERROR': '\033[91m',    # Red
        'CRITICAL': '\033[95m', # Magenta
    }
    DIM = '\033[2m'
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        # Format: HH:MM:SS LEVEL    package.module  message  key=value ...
        formatted = (
            f"{self.DIM}{timestamp}{self.RESET} {color}{record.levelname:<8}{self.RESET} "
            f"{record.name:<28} {record.getMessage()}"
        )

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            context = " ".join(f"{key}={value}" for key, value in extra_data.items())
            formatted += f"  {self.DIM}{context}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class LoggingConfig:
    """Centralized logging configuration manager"""

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = True,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        """
        Initialize logging configuration.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (defaults to ./logs)
            enable_file_logging: Whether to write rotating log files
            enable_console_logging: Whether to log to stdout
            structured_logging: Emit JSON lines instead of colored text
            max_log_size_mb: Maximum size of each log file in MB
            backup_count: Number of rotated files to keep
        """
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = Path(log_dir) if log_dir else Path("./logs")
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_log_size_mb = max_log_size_mb
        self.backup_count = backup_count

    def configure(self, redaction: SecretRedactionFilter) -> None:
        """Install handlers on the root logger, replacing any existing ones"""
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(self.log_level)

        if self.enable_console_logging:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(
                StructuredFormatter() if self.structured_logging else ColoredConsoleFormatter()
            )
            console_handler.addFilter(redaction)
            root_logger.addHandler(console_handler)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_formatter = StructuredFormatter() if self.structured_logging else logging.Formatter(
                '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            for filename, level in (("lock_panel.log", self.log_level), ("errors.log", logging.ERROR)):
                handler = self._rotating_handler(filename, level)
                handler.setFormatter(file_formatter)
                handler.addFilter(redaction)
                root_logger.addHandler(handler)

        # Library chatter stays out of the panel's log unless it is a problem
        for logger_name in ("paho", "aiohttp", "websockets", "asyncio"):
            logging.getLogger(logger_name).setLevel(logging.WARNING)

        logging.getLogger(__name__).debug("Logging system configured", extra={
            "extra_data": {
                "log_level": logging.getLevelName(self.log_level),
                "structured": self.structured_logging,
                "log_dir": str(self.log_dir) if self.enable_file_logging else None,
            }
        })

    def _rotating_handler(self, filename: str, level: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=self.max_log_size_mb * 1024 * 1024,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        handler.setLevel(level)
        return handler


# Global logging state
_logging_config: Optional[LoggingConfig] = None
_redaction = SecretRedactionFilter()


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> None:
    """
    Setup logging for the application.

    Args:
        config_dict: Overrides for the environment-derived defaults
    """
    global _logging_config

    is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    defaults = {
        "log_level": os.getenv("LOG_LEVEL", "INFO" if is_production else "DEBUG"),
        "log_dir": os.getenv("LOG_DIR", "./logs"),
        "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
        "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
        "structured_logging": is_production,
        "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
        "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
    }

    _logging_config = LoggingConfig(**{**defaults, **(config_dict or {})})
    _logging_config.configure(_redaction)


def redact_secret(secret: str) -> None:
    """Never let secret appear in log output"""
    _redaction.add_secret(secret)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance, configuring logging on first use.

    Args:
        name: Logger name (typically __name__)
    """
    if _logging_config is None:
        setup_logging()

    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log a message with structured context attached as extra_data"""
    logger.log(level, message, extra={"extra_data": context})


def log_api_call(logger: logging.Logger, service: str, endpoint: str,
                 status_code: int, duration_ms: float, **context) -> None:
    """Log one REST round trip"""
    level = logging.INFO if 200 <= status_code < 300 else logging.WARNING
    log_with_context(logger, level, f"API call: {service} {endpoint} -> {status_code}",
                     service=service, endpoint=endpoint, status_code=status_code,
                     duration_ms=duration_ms, **context)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context) -> None:
    """Log a handled error with its type and the operation it interrupted"""
    log_with_context(logger, logging.ERROR, f"Error in {operation}: {error}",
                     operation=operation, error_type=type(error).__name__,
                     error_message=str(error), **context)
