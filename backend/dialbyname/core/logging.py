"""
Dial-by-Name Directory - Structured Logging

Log formatters that stamp every record with the webhook request it belongs
to (correlation id, masked call id, domain), in JSON for production and a
single readable line for development.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Dict, Optional


# =============================================================================
# Request Context
# =============================================================================

correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
call_id_var: ContextVar[Optional[str]] = ContextVar('call_id', default=None)
domain_var: ContextVar[Optional[str]] = ContextVar('domain', default=None)

# Loggers that would otherwise log every request or connection at INFO.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def mask_call_id(cid: Optional[str]) -> Optional[str]:
    """Keep only the last 4 characters of a call id."""
    if not cid:
        return None
    return f"***{cid[-4:]}" if len(cid) > 4 else "***"


def current_context() -> Dict[str, str]:
    """Context fields for the request being handled, call id already masked."""
    context = {}

    correlation_id = correlation_id_var.get()
    if correlation_id:
        context["correlation_id"] = correlation_id

    call_id = mask_call_id(call_id_var.get())
    if call_id:
        context["call_id"] = call_id

    domain = domain_var.get()
    if domain:
        context["domain"] = domain

    return context


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record:

    {"timestamp": "...Z", "level": "INFO", "logger": "dialbyname.telephony.flow",
     "message": "...", "correlation_id": "9f1c...", "call_id": "***1234",
     "domain": "example.com"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(current_context())

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


class HumanReadableFormatter(logging.Formatter):
    """`time | LEVEL | logger [call=..., domain=...] | message` for development."""

    def format(self, record: logging.LogRecord) -> str:
        context = current_context()
        tags = [f"call={context['call_id']}"] if "call_id" in context else []
        if "domain" in context:
            tags.append(f"domain={context['domain']}")
        suffix = f" [{', '.join(tags)}]" if tags else ""

        line = (
            f"{datetime.utcnow():%Y-%m-%d %H:%M:%S} | {record.levelname:<8} | "
            f"{record.name}{suffix} | {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_structured_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Route all logging to stdout through one of the formatters above.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON records for production, readable lines otherwise
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """
    Bind request context for every log line written inside the block.

    Usage:
        with LogContext(call_id="0_12345@pbx", domain="example.com"):
            logger.info("Processing keypress")
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        call_id: Optional[str] = None,
        domain: Optional[str] = None,
    ):
        self._pending = {correlation_id_var: correlation_id, call_id_var: call_id, domain_var: domain}
        self._tokens = []

    def __enter__(self):
        for var, value in self._pending.items():
            if value:
                self._tokens.append(var.set(value))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()
        return False
