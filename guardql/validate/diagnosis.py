"""Classification of database error messages into repair classes.

The validation loop never inspects exception types beyond timeouts; it
routes on the message text alone.  Messages from SQL Server, SQLite and
PostgreSQL are recognised.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from guardql.errors import ExecutionError, ProbeTimeoutError


class ErrorClass(str, Enum):
    """Recognised probe failure classes."""

    ORDER_BY_NOT_GROUPED = "order_by_not_grouped"
    UNBOUND_IDENTIFIER = "unbound_identifier"
    INVALID_COLUMN = "invalid_column"
    TIMEOUT = "timeout"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Diagnosis:
    """A classified probe failure.

    Attributes:
        error_class: The repair class.
        message: The database message.
        identifier: The offending identifier, when the message names one.
    """

    error_class: ErrorClass
    message: str
    identifier: str | None = None


_ORDER_BY_RE = re.compile(
    r"invalid in the ORDER BY clause"
    r"|ORDER BY items must appear in the select list"
    r"|must appear in the GROUP BY clause.*ORDER BY",
    re.IGNORECASE | re.DOTALL,
)
_UNBOUND_RE = re.compile(
    r"multi-part identifier\s+\"?(?P<name>[^\"\s]+)?\"?\s*could not be bound"
    r"|ambiguous column name:?\s*['\"]?(?P<ambiguous>[\w.]+)?"
    r"|missing FROM-clause entry for table\s+\"?(?P<missing>\w+)",
    re.IGNORECASE,
)
_INVALID_COLUMN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"invalid column name\s+'(?P<name>[^']+)'", re.IGNORECASE),
    re.compile(r"no such column:\s*(?P<name>[\w.\[\]]+)", re.IGNORECASE),
    re.compile(r"column\s+\"?(?P<name>[\w.]+)\"?\s+does not exist", re.IGNORECASE),
)


def classify(error: ExecutionError) -> Diagnosis:
    """Map a probe failure to its :class:`Diagnosis`."""
    message = error.message
    if isinstance(error, ProbeTimeoutError):
        return Diagnosis(ErrorClass.TIMEOUT, message)
    if _ORDER_BY_RE.search(message):
        return Diagnosis(ErrorClass.ORDER_BY_NOT_GROUPED, message)
    unbound = _UNBOUND_RE.search(message)
    if unbound:
        name = unbound.group("name") or unbound.group("ambiguous") or unbound.group("missing")
        return Diagnosis(ErrorClass.UNBOUND_IDENTIFIER, message, name)
    for pattern in _INVALID_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return Diagnosis(ErrorClass.INVALID_COLUMN, message, match.group("name"))
    return Diagnosis(ErrorClass.UNRECOGNIZED, message)
