"""
Structured logging for StarLedger.

Provides JSON-formatted logging suitable for log aggregation systems,
and a colored console format for development.

Features:
- JSON output format for easy parsing
- Request context (request_id, method, path)
- Redaction of signatures, keys and tokens
- Configurable log level and optional file output
"""

import json
import logging
import os
import re
import sys
import threading
from datetime import UTC, datetime
from typing import Any

# ============================================================
# Sensitive Data Redaction
# ============================================================

SENSITIVE_PATTERNS = [
    # API keys, tokens, passphrases
    (re.compile(r"(api[_-]?key|token|secret|password|passphrase)([\"']?\s*[:=]\s*[\"']?)([^\s\"',}{]+)", re.IGNORECASE), r"\1\2[REDACTED]"),
    # Signatures passed as key=value pairs
    (re.compile(r"(signature)([\"']?\s*[:=]\s*[\"']?)([^\s\"',}{]+)", re.IGNORECASE), r"\1\2[REDACTED]"),
    # Private keys (PEM format)
    (re.compile(r"-----BEGIN[^-]+PRIVATE KEY-----.*?-----END[^-]+PRIVATE KEY-----", re.DOTALL), "[REDACTED_PRIVATE_KEY]"),
]

# Fields that should be completely redacted
REDACTED_FIELDS = {
    "password",
    "passphrase",
    "secret",
    "api_key",
    "token",
    "private_key",
    "signature",
    "authorization",
}

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "exc_info", "exc_text",
    "thread", "threadName", "message", "taskName",
))


def redact_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Recursively redact sensitive data from logs.

    Args:
        data: The data to redact (can be dict, list, string, or other)
        depth: Current recursion depth
        max_depth: Maximum recursion depth

    Returns:
        Data with sensitive information redacted
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if key_lower in REDACTED_FIELDS:
                result[key] = "[REDACTED]"
            else:
                result[key] = redact_sensitive_data(value, depth + 1, max_depth)
        return result

    elif isinstance(data, list):
        return [redact_sensitive_data(item, depth + 1, max_depth) for item in data]

    elif isinstance(data, str):
        return redact_string(data)

    else:
        return data


def redact_string(text: str) -> str:
    """Redact sensitive patterns from a string."""
    if not isinstance(text, str):
        return text

    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


# Thread-local storage for request context
_request_context = threading.local()


def set_request_context(**kwargs) -> None:
    """Set context values for the current request."""
    if not hasattr(_request_context, "data"):
        _request_context.data = {}
    _request_context.data.update(kwargs)


def clear_request_context() -> None:
    """Clear request context after request completes."""
    _request_context.data = {}


def get_request_context() -> dict[str, Any]:
    """Get current request context."""
    return getattr(_request_context, "data", {})


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000000+00:00",
        "level": "INFO",
        "logger": "blockchain",
        "message": "Block appended",
        "request_id": "abc123",
        ...
    }
    """

    def __init__(self, include_stack_info: bool = True, redact_sensitive: bool = True):
        super().__init__()
        self.include_stack_info = include_stack_info
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.redact_sensitive:
            message = redact_string(message)

        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }

        # Location info for warnings and errors
        if record.levelno >= logging.WARNING:
            log_entry["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and self.include_stack_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        context = get_request_context()
        if context:
            if self.redact_sensitive:
                context = redact_sensitive_data(context)
            log_entry["context"] = context

        for key, value in _extra_fields(record).items():
            if self.redact_sensitive:
                value = "[REDACTED]" if key.lower() in REDACTED_FIELDS else redact_sensitive_data(value)
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with colors.

    For development use.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname[0]

        msg = f"{color}{timestamp} {level} [{record.name}]{reset} {redact_string(record.getMessage())}"

        context = get_request_context()
        if context:
            ctx_str = " ".join(f"{k}={v}" for k, v in context.items())
            msg += f" {color}({ctx_str}){reset}"

        extras = [
            f"{key}={'[REDACTED]' if key.lower() in REDACTED_FIELDS else value}"
            for key, value in _extra_fields(record).items()
        ]
        if extras:
            msg += f" [{', '.join(extras)}]"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def configure_logging(
    level: str = "INFO",
    json_output: bool | None = None,
    log_file: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON format (auto-detected from LOG_FORMAT if None)
        log_file: Optional file path for log output
    """
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "").lower() == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if json_output else ConsoleFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


class LoggingContext:
    """
    Context manager for adding temporary context to logs.

    Usage:
        with LoggingContext(request_id="abc123", address="..."):
            logger.info("Processing request")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self.previous_context = {}

    def __enter__(self):
        self.previous_context = get_request_context().copy()
        set_request_context(**self.context)
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        clear_request_context()
        if self.previous_context:
            set_request_context(**self.previous_context)
        return False
