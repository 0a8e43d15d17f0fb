"""
Universal value conversion.

Rule cells read coordinates and write outputs as loosely-typed values
(strings off the wire, ints where a decimal was meant, booleans standing in
for flags). ``convert()`` binds such a value to one of a closed set of
strongly-typed targets.

Manifesto:
    - **Closed target set:** ``TargetKind`` lists everything we convert to
    - **Explicit matrix:** Conversion is a table keyed by target kind and by
      the ``ValueShape`` of the source, not a chain of isinstance checks
    - **Loud failures:** Every error names the source type and the target
    - **Pure:** No state, no I/O, safe from any thread

Architecture:
    ::

        convert(value, target)
            │
            ├── TargetKind(target)        ── unknown → UnsupportedTargetError
            ├── shape_of(value)           ── BOOLEAN, INTEGER, FLOAT, ...
            └── _RULES[target][shape]     ── missing → UnsupportedConversionError
                    │
                    └── rule(value)       ── raises → UnsupportedConversionError

        Target        accepts
        ──────        ───────
        INT8..INT64   same, numbers (wrapped to width), text, bool
                      (+ date/time as epoch ms for INT64)
        FLOAT32/64    same, numbers, text, bool
        BIG_INTEGER   same, numbers, text, bool, date/time (epoch ms)
        BIG_DECIMAL   same, numbers, text, bool, date/time (epoch ms)
        TEXT          same, numbers, bool, date/time
        DATETIME      same, date, struct_time, int (epoch ms), text
        DATE          same, datetime, struct_time, int (epoch ms), text

Examples:
    >>> convert("  42 ", TargetKind.INT32)
    42
    >>> convert(Decimal("10.500"), "text")
    '10.5'
    >>> convert(True, "int64")
    1

Tags:
    conversion, coercion, typing, rulecell

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import calendar
import struct
import time
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from dateutil import parser as date_parser

from rulecell.errors import UnsupportedConversionError, UnsupportedTargetError

TEXT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MILLI = timedelta(milliseconds=1)


class TargetKind(str, Enum):
    """Closed set of conversion targets."""

    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    BIG_INTEGER = "big_integer"
    BIG_DECIMAL = "big_decimal"
    TEXT = "text"
    DATETIME = "datetime"
    DATE = "date"


class ValueShape(str, Enum):
    """Runtime category of a source value."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    TEXT = "text"
    DATETIME = "datetime"
    DATE = "date"
    CALENDAR = "calendar"
    OTHER = "other"


def shape_of(value: Any) -> ValueShape:
    """Classify a value. Order matters: bool is an int, datetime is a date."""
    if isinstance(value, bool):
        return ValueShape.BOOLEAN
    if isinstance(value, int):
        return ValueShape.INTEGER
    if isinstance(value, float):
        return ValueShape.FLOAT
    if isinstance(value, Decimal):
        return ValueShape.DECIMAL
    if isinstance(value, str):
        return ValueShape.TEXT
    if isinstance(value, datetime):
        return ValueShape.DATETIME
    if isinstance(value, date):
        return ValueShape.DATE
    if isinstance(value, time.struct_time):
        return ValueShape.CALENDAR
    return ValueShape.OTHER


def type_name(value: Any) -> str:
    """Qualified runtime type name used in error messages."""
    cls = type(value)
    return f"{cls.__module__}.{cls.__qualname__}"


# ── Primitive helpers ────────────────────────────────────────────────────


def _wrap(bits: int) -> Callable[[int], int]:
    """Two's-complement narrowing to a fixed width."""
    span = 1 << bits
    half = 1 << (bits - 1)

    def wrap(n: int) -> int:
        return ((n + half) % span) - half

    return wrap


def _parse_fixed(bits: int) -> Callable[[str], int]:
    low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1

    def parse(text: str) -> int:
        n = int(text.strip())
        if not low <= n <= high:
            raise ValueError(f"{n} out of range for {bits}-bit integer")
        return n

    return parse


def _to_float32(x: float) -> float:
    return struct.unpack("f", struct.pack("f", x))[0]


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _epoch_millis(value: Any) -> int:
    """Millisecond instant of a datetime, date or struct_time (naive = UTC)."""
    if isinstance(value, datetime):
        return (_aware(value) - EPOCH) // _ONE_MILLI
    if isinstance(value, date):
        return calendar.timegm(value.timetuple()) * 1000
    return calendar.timegm(value) * 1000


def _from_epoch_millis(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


def _parse_datetime(text: str) -> datetime:
    return _aware(date_parser.parse(text.strip()))


def _decimal_text(value: Decimal) -> str:
    """Plain notation with trailing fractional zeros removed."""
    if not value.is_finite():
        return str(value)
    if value == 0:
        return "0"
    sign, digits, exponent = value.as_tuple()
    digits = list(digits)
    while exponent < 0 and len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    return format(Decimal((sign, tuple(digits), exponent)), "f")


# ── Conversion matrix ────────────────────────────────────────────────────

Rule = Callable[[Any], Any]


def _integer_rules(bits: int, *, dates: bool = False) -> dict[ValueShape, Rule]:
    wrap = _wrap(bits)
    rules: dict[ValueShape, Rule] = {
        ValueShape.INTEGER: wrap,
        ValueShape.FLOAT: lambda v: wrap(int(v)),
        ValueShape.DECIMAL: lambda v: wrap(int(v)),
        ValueShape.TEXT: _parse_fixed(bits),
        ValueShape.BOOLEAN: lambda v: 1 if v else 0,
    }
    if dates:
        rules[ValueShape.DATETIME] = _epoch_millis
        rules[ValueShape.DATE] = _epoch_millis
        rules[ValueShape.CALENDAR] = _epoch_millis
    return rules


def _float_rules(narrow: Callable[[float], float]) -> dict[ValueShape, Rule]:
    return {
        ValueShape.FLOAT: narrow,
        ValueShape.INTEGER: lambda v: narrow(float(v)),
        ValueShape.DECIMAL: lambda v: narrow(float(v)),
        ValueShape.TEXT: lambda v: narrow(float(v.strip())),
        ValueShape.BOOLEAN: lambda v: 1.0 if v else 0.0,
    }


_RULES: dict[TargetKind, dict[ValueShape, Rule]] = {
    TargetKind.INT8: _integer_rules(8),
    TargetKind.INT16: _integer_rules(16),
    TargetKind.INT32: _integer_rules(32),
    TargetKind.INT64: _integer_rules(64, dates=True),
    TargetKind.FLOAT32: _float_rules(_to_float32),
    TargetKind.FLOAT64: _float_rules(float),
    TargetKind.BIG_INTEGER: {
        ValueShape.INTEGER: lambda v: v,
        ValueShape.FLOAT: int,
        ValueShape.DECIMAL: int,
        ValueShape.TEXT: lambda v: int(v.strip()),
        ValueShape.BOOLEAN: lambda v: 1 if v else 0,
        ValueShape.DATETIME: _epoch_millis,
        ValueShape.DATE: _epoch_millis,
        ValueShape.CALENDAR: _epoch_millis,
    },
    TargetKind.BIG_DECIMAL: {
        ValueShape.DECIMAL: lambda v: v,
        ValueShape.INTEGER: Decimal,
        ValueShape.FLOAT: lambda v: Decimal(repr(v)),
        ValueShape.TEXT: lambda v: Decimal(v.strip()),
        ValueShape.BOOLEAN: lambda v: Decimal(1) if v else Decimal(0),
        ValueShape.DATETIME: lambda v: Decimal(_epoch_millis(v)),
        ValueShape.DATE: lambda v: Decimal(_epoch_millis(v)),
        ValueShape.CALENDAR: lambda v: Decimal(_epoch_millis(v)),
    },
    TargetKind.TEXT: {
        ValueShape.TEXT: lambda v: v,
        ValueShape.DECIMAL: _decimal_text,
        ValueShape.INTEGER: str,
        ValueShape.FLOAT: repr,
        ValueShape.BOOLEAN: lambda v: "true" if v else "false",
        ValueShape.DATETIME: lambda v: v.strftime(TEXT_DATE_FORMAT),
        ValueShape.DATE: lambda v: v.strftime(TEXT_DATE_FORMAT),
        ValueShape.CALENDAR: lambda v: time.strftime(TEXT_DATE_FORMAT, v),
    },
    TargetKind.DATETIME: {
        ValueShape.DATETIME: lambda v: v,
        ValueShape.DATE: lambda v: datetime(v.year, v.month, v.day, tzinfo=UTC),
        ValueShape.CALENDAR: lambda v: _from_epoch_millis(_epoch_millis(v)),
        ValueShape.INTEGER: _from_epoch_millis,
        ValueShape.TEXT: _parse_datetime,
    },
    TargetKind.DATE: {
        ValueShape.DATE: lambda v: v,
        ValueShape.DATETIME: lambda v: v.date(),
        ValueShape.CALENDAR: lambda v: date(v.tm_year, v.tm_mon, v.tm_mday),
        ValueShape.INTEGER: lambda v: _from_epoch_millis(v).date(),
        ValueShape.TEXT: lambda v: _parse_datetime(v).date(),
    },
}


def target_kind(target: TargetKind | str) -> TargetKind:
    """Resolve a target given as a member or as its string value."""
    if isinstance(target, TargetKind):
        return target
    try:
        return TargetKind(str(target).strip().lower())
    except ValueError:
        raise UnsupportedTargetError(target) from None


def convert(value: Any, target: TargetKind | str) -> Any:
    """
    Convert ``value`` to the requested target kind.

    Args:
        value: Any loosely-typed value
        target: ``TargetKind`` member or its string value (``"int64"``)

    Returns:
        The converted value

    Raises:
        UnsupportedTargetError: target is not a ``TargetKind``
        UnsupportedConversionError: no rule for the value's type, or parsing failed
    """
    kind = target_kind(target)
    shape = shape_of(value)
    rule = _RULES[kind].get(shape)
    if rule is None:
        raise UnsupportedConversionError(
            f"Unsupported value type [{type_name(value)}] attempting to convert to '{kind.value}'",
            source_type=type_name(value),
            target=kind.value,
        )

    try:
        return rule(value)
    except (ValueError, ArithmeticError, InvalidOperation, OverflowError, OSError) as exc:
        raise UnsupportedConversionError(
            f"value [{type_name(value)}] could not be converted to '{kind.value}'",
            source_type=type_name(value),
            target=kind.value,
            cause=exc,
        ) from exc


def supported_shapes(target: TargetKind | str) -> frozenset[ValueShape]:
    """Source shapes accepted for ``target``."""
    return frozenset(_RULES[target_kind(target)])


__all__ = [
    "TargetKind",
    "ValueShape",
    "TEXT_DATE_FORMAT",
    "convert",
    "shape_of",
    "supported_shapes",
    "target_kind",
    "type_name",
]
