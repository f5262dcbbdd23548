"""
Conversion of engine values into Python values.

``convert`` is total over ``SourceValue``: every variant has a defined
Python counterpart. The mapping is

    Null                      -> None
    Boolean                   -> bool
    Int*/UInt*/(U)HugeInt     -> int (arbitrary precision, never truncated)
    Float32/Float64           -> float
    Decimal                   -> decimal.Decimal, built from its exact string
    Text                      -> str
    Blob                      -> bytes
    Date32                    -> datetime.date
    Time/Timestamp            -> datetime.datetime (UTC)
    Interval                  -> datetime.timedelta (calendar naive)
    List/Array                -> list
    Struct                    -> dict (field order kept)
    Map                       -> dict (keys converted, frozen when unhashable)
    Enum                      -> interned str
    Union                     -> inner value, or TaggedValue(tag, value)

Behaviour that callers may want to tune lives on ``ConversionContext``, which
is passed explicitly to every entry point.
"""
import datetime
import decimal
import logging
import sys
from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import Any, NamedTuple, assert_never

from snowduck import values as v
from snowduck.exceptions import ConversionDepthError, TypeConversionError

logger = logging.getLogger(__name__)

__all__ = [
    'ConversionContext',
    'TaggedValue',
    'convert',
    'dedupe_names',
    'SECONDS_PER_MONTH',
    'SECONDS_PER_DAY',
]

SECONDS_PER_DAY = 86_400
SECONDS_PER_MONTH = 30 * SECONDS_PER_DAY
NANOS_PER_SECOND = 1_000_000_000

EPOCH_DATE = datetime.date(1970, 1, 1)
EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class TaggedValue(NamedTuple):
    """Union value with the name of the member that was set.
    """
    tag: str | None
    value: Any


@dataclass(frozen=True)
class ConversionContext:
    """Settings shared by every conversion of one connection.

    union_tags: return ``TaggedValue`` for union cells instead of dropping the tag
    exact_timestamps: use integer arithmetic for time values instead of float division
    max_depth: deepest container nesting accepted before giving up
    """
    union_tags: bool = False
    exact_timestamps: bool = False
    max_depth: int = 64


DEFAULT_CONTEXT = ConversionContext()


def convert(value: v.SourceValue, context: ConversionContext | None = None) -> Any:
    """Convert an engine value into its Python counterpart.
    """
    return _convert(value, context or DEFAULT_CONTEXT, 0)


def _convert(value: v.SourceValue, context: ConversionContext, depth: int) -> Any:
    if depth > context.max_depth:
        raise ConversionDepthError(
            f'Value nesting exceeds maximum depth of {context.max_depth}')

    match value:
        case v.Null():
            return None
        case v.Boolean(b):
            return bool(b)
        case (v.Int8(i) | v.Int16(i) | v.Int32(i) | v.Int64(i)
              | v.UInt8(i) | v.UInt16(i) | v.UInt32(i) | v.UInt64(i)):
            return int(i)
        case v.HugeInt(i) | v.UHugeInt(i):
            return int(str(i))
        case v.Float32(f) | v.Float64(f):
            return float(f)
        case v.Decimal(unscaled, scale):
            return decimal.Decimal(decimal_string(unscaled, scale))
        case v.Text(s):
            return s
        case v.Blob(b):
            return bytes(b)
        case v.Date32(days):
            return _convert_date(days)
        case v.Time(unit, amount) | v.Timestamp(unit, amount):
            return _convert_instant(unit, amount, context.exact_timestamps)
        case v.Interval(months, days, nanos):
            return _convert_interval(months, days, nanos)
        case v.List(items) | v.Array(items):
            return [_convert(item, context, depth + 1) for item in items]
        case v.Struct(fields):
            return _convert_pairs(fields, context, depth)
        case v.Map(entries):
            return _convert_map(entries, context, depth)
        case v.Enum(label):
            return sys.intern(label)
        case v.Union(tag, inner):
            converted = _convert(inner, context, depth + 1)
            if context.union_tags:
                return TaggedValue(tag, converted)
            return converted
        case _:
            assert_never(value)


def decimal_string(unscaled: int, scale: int) -> str:
    """Render ``unscaled * 10 ** -scale`` exactly, e.g. (123456, 3) -> '123.456'.
    """
    sign = '-' if unscaled < 0 else ''
    digits = str(abs(unscaled))
    if scale == 0:
        return f'{sign}{digits}'
    digits = digits.rjust(scale + 1, '0')
    return f'{sign}{digits[:-scale]}.{digits[-scale:]}'


def _convert_date(days: int) -> datetime.date:
    try:
        return EPOCH_DATE + datetime.timedelta(days=days)
    except OverflowError as exc:
        raise TypeConversionError(f'Date {days} days from epoch is out of range') from exc


def _convert_instant(unit: v.TimeUnit, amount: int, exact: bool) -> datetime.datetime:
    """Instant ``amount / unit.per_second`` seconds after the epoch.

    The default route divides in floating point, which keeps roughly 15
    significant digits: nanosecond values far from the epoch lose their
    lowest digits. ``exact`` switches to integer arithmetic, floored to the
    microsecond (the finest resolution of ``datetime``), so an instant before
    the epoch lands on the microsecond that contains it.
    """
    try:
        if unit is v.TimeUnit.SECOND:
            return EPOCH + datetime.timedelta(seconds=amount)
        if exact:
            micros = amount * 1_000_000 // unit.per_second
            return EPOCH + datetime.timedelta(microseconds=micros)
        return EPOCH + datetime.timedelta(seconds=amount / unit.per_second)
    except OverflowError as exc:
        raise TypeConversionError(
            f'Time value {amount} ({unit.name.lower()}) is out of range') from exc


def _convert_interval(months: int, days: int, nanos: int) -> datetime.timedelta:
    # sub-second remainder is dropped, truncating toward zero
    whole_seconds = abs(nanos) // NANOS_PER_SECOND
    if nanos < 0:
        whole_seconds = -whole_seconds
    total = months * SECONDS_PER_MONTH + days * SECONDS_PER_DAY + whole_seconds
    try:
        return datetime.timedelta(seconds=total)
    except OverflowError as exc:
        raise TypeConversionError(f'Interval of {total} seconds is out of range') from exc


def dedupe_names(names: Iterable[str]) -> list[str]:
    """Make names unique the way pandas does: a, a.1, a.2, ...
    """
    seen: dict[str, int] = {}
    result = []
    taken = set()
    for name in names:
        candidate = name
        count = seen.get(name, 0)
        while candidate in taken:
            count += 1
            candidate = f'{name}.{count}'
        seen[name] = count
        taken.add(candidate)
        result.append(candidate)
    return result


def _convert_pairs(fields: tuple[tuple[str, v.SourceValue], ...],
                   context: ConversionContext, depth: int) -> dict[str, Any]:
    names = dedupe_names(name for name, _ in fields)
    return {
        name: _convert(item, context, depth + 1)
        for name, (_, item) in zip(names, fields)
    }


def _convert_map(entries: tuple[tuple[v.SourceValue, v.SourceValue], ...],
                 context: ConversionContext, depth: int) -> dict[Any, Any]:
    result = {}
    for key, item in entries:
        converted_key = freeze_key(_convert(key, context, depth + 1))
        result[converted_key] = _convert(item, context, depth + 1)
    return result


def freeze_key(key: Any) -> Hashable:
    """Turn a converted map key into a hashable one.

    Lists become tuples and dicts become tuples of ``(key, value)`` pairs,
    recursively. Hashable keys are returned unchanged.
    """
    if isinstance(key, list):
        return tuple(freeze_key(item) for item in key)
    if isinstance(key, dict):
        return tuple((freeze_key(k), freeze_key(item)) for k, item in key.items())
    if isinstance(key, TaggedValue):
        return TaggedValue(key.tag, freeze_key(key.value))
    return key
