"""
Tests for shaping converted rows into arrays and keyed objects.
"""
import decimal

import pytest
from snowduck import values as v
from snowduck.conversion import ConversionContext, TaggedValue
from snowduck.exceptions import ColumnConversionError
from snowduck.row import RowProjector, resolve_key_adapter

from libb import attrdict


@pytest.fixture
def row():
    return [
        ('id', v.Int32(1)),
        ('amount', v.Decimal(1050, 2)),
        ('name', v.Text('open')),
    ]


def test_single_column_is_unwrapped():
    projector = RowProjector()
    assert projector.project_array([('n', v.Int64(42))]) == 42


def test_single_null_column_is_unwrapped():
    assert RowProjector().project_array([('n', v.NULL)]) is None


def test_multiple_columns_become_list(row):
    result = RowProjector().project_array(row)
    assert result == [1, decimal.Decimal('10.50'), 'open']
    assert len(result) == len(row)


def test_zero_columns_become_empty_list():
    assert RowProjector().project_array([]) == []


def test_object_mode(row):
    result = RowProjector().project_object(row)
    assert result == {'id': 1, 'amount': decimal.Decimal('10.50'), 'name': 'open'}
    assert list(result) == ['id', 'amount', 'name']


def test_object_mode_with_attribute_access(row):
    projector = RowProjector(key_adapter=resolve_key_adapter(True))
    result = projector.project_object(row)
    assert isinstance(result, attrdict)
    assert result.name == 'open'
    assert result['id'] == 1


def test_plain_dicts_without_indifferent_access(row):
    assert resolve_key_adapter(False) is None
    result = RowProjector().project_object(row)
    assert type(result) is dict


def test_object_mode_duplicate_columns():
    result = RowProjector().project_object([('a', v.Int8(1)), ('a', v.Int8(2))])
    assert result == {'a': 1, 'a.1': 2}


def test_context_is_applied():
    projector = RowProjector(ConversionContext(union_tags=True))
    assert projector.project_array([('u', v.Union('num', v.Int8(1)))]) == TaggedValue('num', 1)


def test_failing_column_aborts_row(row, mocker):
    """A bad cell raises one error naming the column and yields no partial row"""
    import snowduck.row

    real_convert = snowduck.row.convert

    def fake_convert(value, context):
        if isinstance(value, v.Decimal):
            raise ArithmeticError('overflow')
        return real_convert(value, context)

    mocker.patch('snowduck.row.convert', side_effect=fake_convert)
    projector = RowProjector()
    for project in (projector.project_array, projector.project_object):
        with pytest.raises(ColumnConversionError) as excinfo:
            project(row)
        assert excinfo.value.column_name == 'amount'
        assert isinstance(excinfo.value.cause, ArithmeticError)
        assert 'Error converting value of column amount' in str(excinfo.value)


def test_out_of_range_value_names_column():
    projector = RowProjector()
    with pytest.raises(ColumnConversionError) as excinfo:
        projector.project_array([('id', v.Int8(1)), ('stamp', v.Date32(10 ** 8))])
    assert excinfo.value.column_name == 'stamp'


def test_project_many(row):
    projector = RowProjector()
    assert projector.project_rows([row, row]) == [[1, decimal.Decimal('10.50'), 'open']] * 2
    assert len(projector.project_objects([row])) == 1
