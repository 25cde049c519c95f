"""
tsrag - Logging
================
Logger factory shared by every tsrag module.

Verbosity follows ``settings.ENV`` (``dev`` → DEBUG, ``prod`` → WARNING,
anything else → INFO).  Every handler carries a ``RedactingFilter`` so
that MongoDB credentials and the Gemini key never reach the output,
even when a driver error message embeds the connection string.

Usage:
    from tsrag.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[RAG] Pipeline total: %.1fms", total_ms)
"""

import logging
import re
import sys

from tsrag.config.settings import settings

_ENV_LEVEL_MAP = {"dev": logging.DEBUG, "prod": logging.WARNING}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# user:password@ in mongodb:// and mongodb+srv:// URIs
_URI_CREDENTIALS_RE = re.compile(r"(mongodb(?:\+srv)?://)[^@/\s]+@")
_MASK = "***"


class RedactingFilter(logging.Filter):
    """Rewrite each record's message with credentials masked."""

    def __init__(self, secrets: tuple[str, ...] = ()) -> None:
        super().__init__()
        self._secrets = tuple(secret for secret in secrets if secret)


    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message, self._secrets)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact(text: str, secrets: tuple[str, ...] = ()) -> str:
    """Mask URI credentials and every literal secret in *text*."""
    text = _URI_CREDENTIALS_RE.sub(rf"\1{_MASK}@", text)
    for secret in secrets:
        text = text.replace(secret, _MASK)
    return text


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the named logger, attaching a stdout handler on first use.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level; derived from ``settings.ENV`` when *None*.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger.setLevel(resolved_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.addFilter(RedactingFilter((settings.GOOGLE_API_KEY.get_secret_value(),)))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
