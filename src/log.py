"""Logging helpers.

Every module takes a module-level logger:

    LOGGER = get_logger(__name__)

and passes structured context through ``extra``:

    LOGGER.info("Arrangement saved", extra={"workspace_id": ws, "pieces": 3})

The formatter appends any such context to the message as ``key=value``
pairs so it stays visible on a plain console handler.
"""

import logging
import sys
from typing import Optional

_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_configured = False


class ContextFormatter(logging.Formatter):
    """Formatter that renders `extra` fields after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            k: v for k, v in record.__dict__.items()
            if k not in _RESERVED and not k.startswith("_")
        }
        if not context:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return f"{base} | {pairs}"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the root logger (idempotent)."""
    global _configured
    root = logging.getLogger()
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ContextFormatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    root.addHandler(handler)
    _configured = True


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a named logger, optionally setting its level."""
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger
