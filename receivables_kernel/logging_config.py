"""
Structured JSON logging for the receivables ledger.

Every record under the ``receivables`` logger is written as one JSON
line.  Fields bound with ``LogContext.bind`` (the customer whose ledger
is being rebuilt, the batch job being run) are added to every record
emitted inside the ``with`` block, on the current thread or task only.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, TextIO
from uuid import UUID

_ROOT = "receivables"

_bound: ContextVar[Mapping[str, str]] = ContextVar(
    "receivables_log_context", default=MappingProxyType({}),
)


class LogContext:
    """Fields stamped on every record logged inside a ``bind`` block."""

    @staticmethod
    @contextmanager
    def bind(
        *,
        customer_id: str | None = None,
        job_id: str | None = None,
    ) -> Iterator[None]:
        fields = dict(_bound.get())
        if customer_id is not None:
            fields["customer_id"] = str(customer_id)
        if job_id is not None:
            fields["job_id"] = str(job_id)
        token = _bound.set(MappingProxyType(fields))
        try:
            yield
        finally:
            _bound.reset(token)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_bound.get())

    @staticmethod
    def clear() -> None:
        _bound.set(MappingProxyType({}))


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return repr(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: header, bound context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_bound.get(),
        }
        payload.update(
            (k, v) for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and k not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            # ReceivablesError subclasses carry a code plus structured fields
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            payload.update(
                (f"exc_{k}", v) for k, v in vars(exc).items()
                if not k.startswith("_") and k not in ("args", "code")
            )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``receivables`` namespace."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``receivables`` logger.

    Does nothing when a handler with a StructuredFormatter is already
    attached, so engine construction and scripts can both call it.
    """
    root = logging.getLogger(_ROOT)
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    root.setLevel(level)
    root.propagate = False
    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)
