"""
Structured logging for the lifecycle engine.

Modules log through plain ``logging.getLogger(__name__)``. Workers that run
batches use a ``ContextualLogger`` so every record they emit carries the
worker id, and ``setup_logging`` attaches either the JSON formatter (one
object per line, for log shippers) or a plain text one.
"""
import enum
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """
    Render records as single-line JSON.

    Example output:
    {"timestamp": "2025-01-19T10:30:45.123456+00:00", "level": "INFO",
     "logger": "filevault.services.migration_worker",
     "message": "hot_to_cold batch: 12 migrated, 1 conflicts, 0 failed of 13 candidates",
     "worker_id": "worker-1", "direction": "hot_to_cold"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update(
            (key, _jsonable(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(entry, default=str, ensure_ascii=False)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    if isinstance(value, enum.Enum):
        return value.value
    return value


class ContextualLogger:
    """
    Logger wrapper that stamps fixed fields on every record.

    Usage:
        logger = get_logger(__name__, with_context=True)
        logger.set_context(worker_id="worker-1")
        logger.info("Claimed file 42")  # record carries worker_id
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.context: Dict[str, Any] = {}

    def set_context(self, **fields) -> None:
        self.context.update(fields)

    def clear_context(self) -> None:
        self.context.clear()

    def log(self, level: int, msg: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        merged = {**self.context, **(extra or {})}
        kwargs.setdefault("stacklevel", 3)
        self.logger.log(level, msg, *args, extra=merged, **kwargs)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        kwargs["exc_info"] = True
        self.log(logging.ERROR, msg, *args, **kwargs)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    logger_name: Optional[str] = "filevault"
) -> logging.Logger:
    """
    Configure the engine's logger hierarchy.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" for JSONFormatter, anything else for plain text
        logger_name: Logger to configure (None for the root logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    logger.debug(f"Logging configured (level={level}, format={log_format})")
    return logger


def get_logger(name: str, with_context: bool = False) -> Union[logging.Logger, ContextualLogger]:
    """Module logger, optionally wrapped in a ContextualLogger."""
    logger = logging.getLogger(name)
    return ContextualLogger(logger) if with_context else logger
