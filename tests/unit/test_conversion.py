"""
Tests for converting engine values into Python values.
"""
import datetime
import decimal

import pytest
from snowduck import values as v
from snowduck.conversion import ConversionContext, TaggedValue, convert
from snowduck.conversion import dedupe_names, decimal_string, freeze_key
from snowduck.exceptions import ConversionDepthError, TypeConversionError

UTC = datetime.timezone.utc


def test_every_variant_converts(variant_samples):
    """Each variant converts to its expected Python value and type"""
    for name, (source, expected) in variant_samples.items():
        result = convert(source)
        assert result == expected, name
        assert type(result) is type(expected), name


def test_unsigned_64_bit_maximum_is_not_truncated():
    assert convert(v.UInt64(18446744073709551615)) == 18446744073709551615


def test_hugeint_keeps_full_precision():
    value = 2 ** 127 - 1
    assert convert(v.HugeInt(value)) == value


def test_decimal_is_exact():
    result = convert(v.Decimal(123456, 3))
    assert isinstance(result, decimal.Decimal)
    assert str(result) == '123.456'


@pytest.mark.parametrize(('unscaled', 'scale', 'expected'), [
    (0, 0, '0'),
    (5, 3, '0.005'),
    (-5, 3, '-0.005'),
    (-123456, 2, '-1234.56'),
    (100, 2, '1.00'),
    (12345678901234567890123456789012345678, 10,
     '1234567890123456789012345678.9012345678'),
])
def test_decimal_string(unscaled, scale, expected):
    assert decimal_string(unscaled, scale) == expected


def test_struct_keeps_field_order():
    value = v.Struct((
        ('a', v.Int32(1)),
        ('b', v.List((v.Int32(2), v.Int32(3)))),
    ))
    result = convert(value)
    assert result == {'a': 1, 'b': [2, 3]}
    assert list(result) == ['a', 'b']


def test_struct_duplicate_field_names_are_suffixed():
    value = v.Struct((('a', v.Int8(1)), ('a', v.Int8(2)), ('a', v.Int8(3))))
    assert convert(value) == {'a': 1, 'a.1': 2, 'a.2': 3}


def test_interval_month_and_days():
    assert convert(v.Interval(1, 15, 0)) == datetime.timedelta(seconds=3_888_000)


@pytest.mark.parametrize(('nanos', 'seconds'), [
    (1_999_999_999, 1),
    (-1_999_999_999, -1),
    (999_999_999, 0),
])
def test_interval_drops_sub_second_part_toward_zero(nanos, seconds):
    assert convert(v.Interval(0, 0, nanos)) == datetime.timedelta(seconds=seconds)


def test_negative_interval():
    assert convert(v.Interval(-1, 0, 0)) == datetime.timedelta(days=-30)


def test_timestamps_are_utc():
    result = convert(v.Timestamp(v.TimeUnit.MILLISECOND, 1_705_314_600_000))
    assert result == datetime.datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
    assert result.tzinfo is UTC


def test_negative_timestamp_before_epoch():
    result = convert(v.Timestamp(v.TimeUnit.SECOND, -86_400))
    assert result == datetime.datetime(1969, 12, 31, tzinfo=UTC)


def test_exact_timestamps_keep_microseconds():
    nanos = 1_705_314_600_123_456_789
    exact = convert(v.Timestamp(v.TimeUnit.NANOSECOND, nanos),
                    ConversionContext(exact_timestamps=True))
    assert exact == datetime.datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=UTC)


def test_timestamp_out_of_range():
    with pytest.raises(TypeConversionError):
        convert(v.Timestamp(v.TimeUnit.SECOND, 10 ** 15))


def test_date_out_of_range():
    with pytest.raises(TypeConversionError):
        convert(v.Date32(10 ** 8))


def test_date_before_epoch():
    assert convert(v.Date32(-1)) == datetime.date(1969, 12, 31)


def test_union_drops_tag_by_default():
    assert convert(v.Union('str', v.Text('x'))) == 'x'


def test_union_tags_keep_member_name():
    result = convert(v.Union('num', v.Int32(2)), ConversionContext(union_tags=True))
    assert result == TaggedValue('num', 2)
    assert result.tag == 'num'


def test_null_union_member():
    assert convert(v.Union('num', v.NULL)) is None


def test_enum_labels_are_interned():
    first = convert(v.Enum(''.join(['ha', 'ppy'])))
    second = convert(v.Enum(''.join(['hap', 'py'])))
    assert first is second


def test_map_with_unhashable_keys():
    value = v.Map((
        (v.List((v.Int8(1), v.Int8(2))), v.Text('list key')),
        (v.Struct((('k', v.Int8(1)),)), v.Text('struct key')),
    ))
    assert convert(value) == {(1, 2): 'list key', (('k', 1),): 'struct key'}


def test_map_last_duplicate_key_wins():
    value = v.Map(((v.Text('k'), v.Int8(1)), (v.Text('k'), v.Int8(2))))
    assert convert(value) == {'k': 2}


def test_map_with_null_key():
    assert convert(v.Map(((v.NULL, v.Int8(1)),))) == {None: 1}


def test_empty_containers():
    assert convert(v.List(())) == []
    assert convert(v.Struct(())) == {}
    assert convert(v.Map(())) == {}


def test_nesting_within_depth():
    value = v.Int8(1)
    for _ in range(10):
        value = v.List((value,))
    result = convert(value, ConversionContext(max_depth=10))
    for _ in range(10):
        result = result[0]
    assert result == 1


def test_nesting_beyond_depth():
    value = v.Int8(1)
    for _ in range(11):
        value = v.List((value,))
    with pytest.raises(ConversionDepthError):
        convert(value, ConversionContext(max_depth=10))


def test_freeze_key_leaves_hashable_keys():
    assert freeze_key('a') == 'a'
    assert freeze_key(TaggedValue('t', [1])) == TaggedValue('t', (1,))


def test_dedupe_names():
    assert dedupe_names(['a', 'b', 'a', 'a']) == ['a', 'b', 'a.1', 'a.2']
    assert dedupe_names(['a', 'a.1', 'a']) == ['a', 'a.1', 'a.2']


@pytest.mark.parametrize(('nanos', 'expected'), [
    (-1, datetime.datetime(1969, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)),
    (-1_000, datetime.datetime(1969, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)),
    (-1_001, datetime.datetime(1969, 12, 31, 23, 59, 59, 999998, tzinfo=UTC)),
    (1_999, datetime.datetime(1970, 1, 1, 0, 0, 0, 1, tzinfo=UTC)),
])
def test_exact_timestamps_floor_to_microsecond(nanos, expected):
    """Sub-microsecond parts round toward the earlier instant"""
    context = ConversionContext(exact_timestamps=True)
    assert convert(v.Timestamp(v.TimeUnit.NANOSECOND, nanos), context) == expected


def test_unsigned_hugeint_maximum():
    assert convert(v.UHugeInt(2 ** 128 - 1)) == 340282366920938463463374607431768211455
