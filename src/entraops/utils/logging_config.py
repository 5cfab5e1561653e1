"""Logging configuration for entraops."""

import json
import logging
import logging.handlers
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER_NAME = "entraops"


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


@dataclass
class LoggingConfig:
    """Configuration for logging system."""

    level: LogLevel = LogLevel.INFO
    console_level: LogLevel = LogLevel.WARNING
    format_type: LogFormat = LogFormat.DETAILED
    enable_file_logging: bool = True
    enable_console_logging: bool = True
    log_directory: str = "~/.entraops/logs"
    log_filename: str = "entraops.log"
    max_file_size_mb: int = 10
    backup_count: int = 5
    sensitive_keys: List[str] = field(
        default_factory=lambda: ["password", "secret", "token", "client_secret"]
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], verbose: bool = False) -> "LoggingConfig":
        """Build a LoggingConfig from the ``logging`` section of the config file."""
        level = LogLevel(str(data.get("level", "INFO")).upper())
        return cls(
            level=LogLevel.DEBUG if verbose else level,
            console_level=LogLevel.DEBUG if verbose else LogLevel.WARNING,
            format_type=LogFormat(str(data.get("format", "detailed")).lower()),
            enable_file_logging=bool(data.get("file_logging", True)),
            log_directory=str(data.get("log_directory", cls.log_directory)),
            log_filename=str(data.get("log_filename", cls.log_filename)),
            max_file_size_mb=int(data.get("max_file_size_mb", 10)),
            backup_count=int(data.get("backup_count", 5)),
        )


class SensitiveDataFilter(logging.Filter):
    """Filter to redact secret values from log messages."""

    def __init__(self, keys: List[str]) -> None:
        """
        Initialize the filter with the names of sensitive fields.

        Args:
            keys: Field names whose values must never reach a log
        """
        super().__init__()
        alternatives = "|".join(re.escape(k) for k in keys)
        self.pattern = re.compile(
            rf"(\b(?:{alternatives})\b[\"']?\s*[:=]\s*[\"']?)([^\s\"',;}}]+)", re.IGNORECASE
        )

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place; never drops it."""
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            record.msg = self.pattern.sub(r"\1[REDACTED]", record.msg)
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class LoggingManager:
    """Centralized logging setup for entraops."""

    def __init__(self, config: Optional[LoggingConfig] = None):
        """
        Initialize the logging manager.

        Args:
            config: Logging configuration
        """
        self.config = config or LoggingConfig()
        self._handlers_configured = False

    @property
    def log_file(self) -> Path:
        return Path(self.config.log_directory).expanduser() / self.config.log_filename

    def setup_logging(self) -> None:
        """Set up handlers on the package root logger."""
        if self._handlers_configured:
            return

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(logging.DEBUG)
        root_logger.handlers.clear()
        root_logger.propagate = False

        sensitive_filter = SensitiveDataFilter(self.config.sensitive_keys)

        if self.config.enable_console_logging:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, self.config.console_level.value))
            console_handler.setFormatter(self._formatter(for_file=False))
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        if self.config.enable_file_logging:
            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(self.log_file),
                    maxBytes=self.config.max_file_size_mb * 1024 * 1024,
                    backupCount=self.config.backup_count,
                    encoding="utf-8",
                )
            except OSError as e:
                root_logger.warning("File logging disabled, cannot open %s: %s", self.log_file, e)
            else:
                file_handler.setLevel(getattr(logging, self.config.level.value))
                file_handler.setFormatter(self._formatter(for_file=True))
                file_handler.addFilter(sensitive_filter)
                root_logger.addHandler(file_handler)

        for logger_name in ("urllib3", "requests", "msal"):
            logging.getLogger(logger_name).setLevel(logging.WARNING)

        self._handlers_configured = True

    def _formatter(self, for_file: bool) -> logging.Formatter:
        if self.config.format_type == LogFormat.JSON:
            return StructuredFormatter()
        if self.config.format_type == LogFormat.SIMPLE or not for_file:
            return logging.Formatter("%(levelname)-8s %(name)s - %(message)s")
        return logging.Formatter(
            "[%(asctime)s] %(levelname)-8s - %(name)s - %(threadName)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(settings: Optional[Dict[str, Any]] = None, verbose: bool = False) -> LoggingManager:
    """Configure logging from the ``logging`` config section.

    Args:
        settings: The ``logging`` section of the configuration file
        verbose: Log everything at DEBUG, also to the console

    Returns:
        The LoggingManager that was applied
    """
    manager = LoggingManager(LoggingConfig.from_dict(settings or {}, verbose=verbose))
    manager.setup_logging()
    return manager
