"""
JSON log output for the vault tools.

Contracts and the CLI log through ``logging.getLogger(__name__)`` with an
``event`` key in ``extra``. ``setup_logging`` attaches handlers to the
``messagevault`` logger so every module below it emits one JSON object per
line, tagged with the network the chain state belongs to.

Usage:
    from messagevault.core.logging_config import setup_logging

    logger = setup_logging(log_file="logs/vault.json", environment="sepolia")
    logger.info("Vault deployed", extra={"event": "maintenance.vault_deployed"})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Optional

from pythonjsonlogger import jsonlogger

DEFAULT_NETWORK = "devnet"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Adds the network, service name and call site to every record.

    ``extra`` fields such as ``event``, ``account`` or ``id`` come through
    unchanged as top-level keys.
    """

    def __init__(
        self,
        fmt: str = "%(timestamp)s %(level)s %(name)s %(message)s",
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "messagevault",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or DEFAULT_NETWORK
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


def _rotating_file_handler(log_file: str, max_bytes: int, backup_count: int) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def setup_logging(
    name: str = "messagevault",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = DEFAULT_NETWORK,
    enable_console: bool = True,
    max_bytes: int = LOG_FILE_MAX_BYTES,
    backup_count: int = LOG_FILE_BACKUPS,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Route the ``name`` logger and its children to JSON handlers.

    Calling it again replaces the handlers installed by the previous call,
    so the CLI can reconfigure on every invocation.

    Args:
        name: Root of the logger tree to configure
        log_file: Rotating JSON log file; skipped when None
        level: Threshold level name, e.g. "DEBUG" or "WARNING"
        environment: Network tag stamped on every record
        enable_console: Write records to ``stream``
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept beside the active one
        stream: Console destination, stderr when None

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers = []

    formatter = CustomJsonFormatter(environment=environment, service_name=name.split(".")[0])
    handlers = []

    if enable_console:
        handlers.append(logging.StreamHandler(stream or sys.stderr))

    if log_file:
        try:
            handlers.append(_rotating_file_handler(log_file, max_bytes, backup_count))
        except OSError as e:
            logger.warning("Log file %s unavailable, continuing without it: %s", log_file, e)

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
