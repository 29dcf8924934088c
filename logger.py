"""Logging configuration for the Azure OpenAI proxy."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import colorlog

LOGGER_NAME = "azure_proxy"
DEFAULT_LOG_PATH = "/var/log/azure-proxy/azure-proxy.log"

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
COLOR_FORMAT = "%(log_color)s%(asctime)s %(levelname)-8s%(reset)s %(name)s - %(message)s"
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# 1 MB x 3 backups
_ROTATE_MAX_BYTES = 1_048_576
_ROTATE_BACKUPS = 3


def setup_logging(
    log_path: str | None = None,
    level_name: str = "INFO",
    color: bool = True,
) -> logging.Logger:
    """
    Configure the proxy logger from the loaded AppConfig values.

    ``level_name`` is a logging level name (case-insensitive); unknown names mean INFO
    and "DISABLE" turns logging off. Records go to a rotating file at ``log_path``,
    or to stderr when that file cannot be opened.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = False

    level_name = (level_name or "INFO").upper().strip()
    if level_name == "DISABLE":
        logging.disable(logging.CRITICAL)
        logger.addHandler(logging.NullHandler())
        return logger

    logging.disable(logging.NOTSET)
    logger.setLevel(logging.getLevelName(level_name) if level_name in LEVEL_COLORS else logging.INFO)

    path = log_path or DEFAULT_LOG_PATH
    try:
        handler: logging.Handler = RotatingFileHandler(
            path,
            maxBytes=_ROTATE_MAX_BYTES,
            backupCount=_ROTATE_BACKUPS,
            encoding="utf-8",
        )
        open_err: OSError | None = None
    except OSError as e:
        handler, open_err = logging.StreamHandler(), e

    if color:
        handler.setFormatter(colorlog.ColoredFormatter(COLOR_FORMAT, log_colors=LEVEL_COLORS, reset=True))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    logger.addHandler(handler)

    if open_err is not None:
        logger.warning("Failed to open log file %r (%s). Logging to stderr instead.", path, open_err)
    return logger


def mask_secret(s: str, keep_start: int = 4, keep_end: int = 4) -> str:
    """Mask a secret string, keeping only start and end characters."""
    s = (s or "").strip()
    if not s:
        return ""
    if len(s) <= keep_start + keep_end:
        return "*" * len(s)
    return f"{s[:keep_start]}...{s[-keep_end:]}"
