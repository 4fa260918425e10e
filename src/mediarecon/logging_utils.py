"""
Structured logging for media reconciliation runs.

Every stage logs through ``log_media`` so records carry a ``channel``
(``media:collect``, ``media:resolve``, ``media:bundle``, ``media:download``,
``media:rewrite``, ``media:map``) and a nested ``media`` context dict. The
JSON formatter flattens both into the emitted document.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import jsonlogger

PACKAGE_LOGGER = "mediarecon"


class MediaJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with standard fields for reconciliation activity trails.

    Automatically adds:
    - timestamp (UTC ISO)
    - log_level
    - module, function, line
    - channel and media context (if provided)
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
        log_record['log_level'] = record.levelname
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

        if hasattr(record, 'channel'):
            log_record['channel'] = record.channel
        if hasattr(record, 'media'):
            log_record['media'] = record.media

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)


def configure_logging(level: str = "INFO", json_output: bool = True) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Calling this more than once replaces the previously installed handler.

    Args:
        level: Log level name
        json_output: Emit JSON documents instead of plain text lines

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_mediarecon", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._mediarecon = True  # type: ignore[attr-defined]
    if json_output:
        handler.setFormatter(MediaJsonFormatter('%(message)s'))
    else:
        handler.setFormatter(logging.Formatter('{levelname} {asctime} {name} {message}', style='{'))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


def log_media(
    logger: logging.Logger,
    channel: str,
    message: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Write a structured log entry under a media channel.

    Usage:
        log_media(logger, "media:download", "Downloaded media asset",
                  original_id=7, attachment_id=12)
    """
    logger.log(
        level,
        "%s: %s",
        channel,
        message,
        extra={"channel": channel, "media": context},
    )
