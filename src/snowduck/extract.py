"""
Read engine results into the value model.

The engine exports query results as Arrow record batches. Each cell is read
as a PyArrow scalar and turned into a ``SourceValue`` using its raw storage
(integer ticks for times, day counts for dates, unscaled digits for
decimals) so that nothing is rounded before conversion.
"""
import logging
from collections.abc import Iterator, Sequence

import pyarrow as pa
import pyarrow.types as pat

from snowduck import values as v
from snowduck.exceptions import ColumnConversionError

logger = logging.getLogger(__name__)

__all__ = ['source_value', 'rows_from_table']

# the engine exports these as decimal128(38, 0), the unsigned one as the raw
# 128-bit pattern
HUGEINT_TYPES = {'HUGEINT', 'UHUGEINT'}
TWO_128 = 1 << 128

_INTEGER_VARIANTS = (
    (pat.is_int8, v.Int8),
    (pat.is_int16, v.Int16),
    (pat.is_int32, v.Int32),
    (pat.is_int64, v.Int64),
    (pat.is_uint8, v.UInt8),
    (pat.is_uint16, v.UInt16),
    (pat.is_uint32, v.UInt32),
    (pat.is_uint64, v.UInt64),
)


def _is_text(dtype: pa.DataType) -> bool:
    return pat.is_string(dtype) or pat.is_large_string(dtype) or (
        hasattr(pat, 'is_string_view') and pat.is_string_view(dtype))


def _is_binary(dtype: pa.DataType) -> bool:
    return (pat.is_binary(dtype) or pat.is_large_binary(dtype)
            or pat.is_fixed_size_binary(dtype)
            or (hasattr(pat, 'is_binary_view') and pat.is_binary_view(dtype)))


def _is_variable_list(dtype: pa.DataType) -> bool:
    return pat.is_list(dtype) or pat.is_large_list(dtype) or (
        hasattr(pat, 'is_list_view') and pat.is_list_view(dtype)) or (
        hasattr(pat, 'is_large_list_view') and pat.is_large_list_view(dtype))


def _unscaled(value, scale: int) -> int:
    """Unscaled integer of a ``decimal.Decimal`` at the column's scale.
    """
    sign, digits, exponent = value.as_tuple()
    unscaled = int(''.join(map(str, digits)) or '0')
    shift = exponent + scale
    if shift >= 0:
        unscaled *= 10 ** shift
    else:
        unscaled //= 10 ** -shift
    return -unscaled if sign else unscaled


def _children(array: pa.Array | None) -> tuple[v.SourceValue, ...]:
    if array is None:
        return ()
    return tuple(source_value(item) for item in array)


def source_value(scalar: pa.Scalar, engine_type: str | None = None) -> v.SourceValue:
    """Build the SourceValue held by one Arrow scalar.

    ``engine_type`` is the engine's own name for the column type, used where
    the Arrow export is ambiguous (128-bit integers arrive as decimals).
    """
    if not scalar.is_valid:
        return v.NULL

    dtype = scalar.type

    if pat.is_boolean(dtype):
        return v.Boolean(scalar.as_py())

    for check, variant in _INTEGER_VARIANTS:
        if check(dtype):
            return variant(scalar.as_py())

    if pat.is_float16(dtype) or pat.is_float32(dtype):
        return v.Float32(float(scalar.as_py()))
    if pat.is_float64(dtype):
        return v.Float64(scalar.as_py())

    if pat.is_decimal(dtype):
        if engine_type in HUGEINT_TYPES and dtype.scale == 0:
            value = int(scalar.as_py())
            if engine_type == 'UHUGEINT':
                return v.UHugeInt(value + TWO_128 if value < 0 else value)
            return v.HugeInt(value)
        return v.Decimal(_unscaled(scalar.as_py(), dtype.scale), dtype.scale)

    if _is_text(dtype):
        return v.Text(scalar.as_py())
    if _is_binary(dtype):
        return v.Blob(scalar.as_py())

    if pat.is_date32(dtype):
        return v.Date32(scalar.value)
    if pat.is_date64(dtype):
        return v.Date32(scalar.value // 86_400_000)
    if pat.is_time32(dtype) or pat.is_time64(dtype):
        return v.Time(v.TimeUnit.from_arrow(dtype.unit), scalar.value)
    if pat.is_timestamp(dtype):
        return v.Timestamp(v.TimeUnit.from_arrow(dtype.unit), scalar.value)
    if dtype == pa.month_day_nano_interval():
        interval = scalar.as_py()
        return v.Interval(interval.months, interval.days, interval.nanoseconds)
    if pat.is_duration(dtype):
        per_second = v.TimeUnit.from_arrow(dtype.unit).per_second
        return v.Interval(0, 0, scalar.value * (1_000_000_000 // per_second))

    if pat.is_map(dtype):
        entries = scalar.values
        if entries is None:
            return v.Map(())
        keys, items = entries.field(0), entries.field(1)
        return v.Map(tuple(
            (source_value(key), source_value(item))
            for key, item in zip(keys, items)))
    if pat.is_fixed_size_list(dtype):
        return v.Array(_children(scalar.values))
    if _is_variable_list(dtype):
        return v.List(_children(scalar.values))
    if pat.is_struct(dtype):
        return v.Struct(tuple(
            (dtype.field(index).name, source_value(scalar[index]))
            for index in range(dtype.num_fields)))
    if pat.is_dictionary(dtype):
        return v.Enum(str(scalar.as_py()))
    if pat.is_union(dtype):
        child = dtype.type_codes.index(scalar.type_code)
        return v.Union(dtype.field(child).name, source_value(scalar.value))

    logger.debug(f'Reading Arrow type {dtype} as text')
    return v.Text(str(scalar.as_py()))


def _read_cell(name: str, column: pa.Array, index: int, hint: str | None) -> v.SourceValue:
    try:
        return source_value(column[index], hint)
    except (pa.ArrowException, ArithmeticError, ValueError, TypeError, KeyError) as exc:
        raise ColumnConversionError(name, exc) from exc


def rows_from_table(table: pa.Table,
                    engine_types: Sequence[str] | None = None) -> Iterator[v.Row]:
    """Yield one Row per record of ``table``, in order.

    ``engine_types`` holds the engine's type name for each column.
    """
    names = table.schema.names
    hints = list(engine_types) if engine_types else [None] * len(names)
    for batch in table.to_batches():
        columns = batch.columns
        for index in range(batch.num_rows):
            yield [
                (name, _read_cell(name, column, index, hint))
                for name, column, hint in zip(names, columns, hints)
            ]
