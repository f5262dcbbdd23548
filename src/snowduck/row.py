"""Row projection: shaping a converted result row into a list, scalar or mapping."""
import logging
import sys
from collections.abc import Callable, Iterable
from typing import Any

from snowduck.conversion import ConversionContext, convert, dedupe_names
from snowduck.exceptions import ColumnConversionError, DatabaseError
from snowduck.values import Row

from libb import attrdict

logger = logging.getLogger(__name__)

__all__ = ['RowProjector', 'resolve_key_adapter']

KeyAdapter = Callable[[dict[str, Any]], dict[str, Any]]


def resolve_key_adapter(indifferent_access: bool) -> KeyAdapter | None:
    """Pick the mapping wrapper used for keyed rows.

    ``attrdict`` allows both ``row['name']`` and ``row.name``. Returning None
    leaves keyed rows as plain dicts.
    """
    if indifferent_access:
        return attrdict
    return None


class RowProjector:
    """Converts Rows into array-mode or object-mode Python values.

    Array mode returns the single value of a one-column row unwrapped and a
    list of values otherwise. Object mode returns a mapping of column name to
    value. In both modes a failing cell aborts the whole row with a
    ColumnConversionError naming the column.
    """

    def __init__(self, context: ConversionContext | None = None,
                 key_adapter: KeyAdapter | None = None) -> None:
        self.context = context or ConversionContext()
        self.key_adapter = key_adapter

    def convert_cell(self, name: str, value: Any) -> Any:
        try:
            return convert(value, self.context)
        except (DatabaseError, ArithmeticError, ValueError, TypeError) as exc:
            logger.error(f'Failed to convert column {name}: {exc}')
            raise ColumnConversionError(name, exc) from exc

    def project_array(self, row: Row) -> Any:
        values = [self.convert_cell(name, value) for name, value in row]
        # one column is returned bare, not as a one element list
        if len(values) == 1:
            return values[0]
        return values

    def project_object(self, row: Row) -> dict[str, Any]:
        names = dedupe_names(name for name, _ in row)
        result = {
            sys.intern(key): self.convert_cell(name, value)
            for key, (name, value) in zip(names, row)
        }
        if self.key_adapter is not None:
            return self.key_adapter(result)
        return result

    def project_rows(self, rows: Iterable[Row]) -> list[Any]:
        return [self.project_array(row) for row in rows]

    def project_objects(self, rows: Iterable[Row]) -> list[dict[str, Any]]:
        return [self.project_object(row) for row in rows]
