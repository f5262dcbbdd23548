"""
A session populated on demand from a database definition.

Tables are created the first time something asks for them, dependencies
first, and never twice:

    db = Database(definition, snowduck.connect())
    with db.with_tables('daily_totals') as cn:
        cn.query_rows('select * from daily_totals')
"""
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any

from snowduck.connection import DUMP_DATABASE_ALIAS, Connection
from snowduck.ddl import DatabaseDefinition, TableDefinition
from snowduck.exceptions import ValidationError
from snowduck.format import Formatter, MermaidFormatter
from snowduck.sql import quote_literal

__all__ = ['Database', 'requires_tables']

logger = logging.getLogger(__name__)


def _table_name(table: TableDefinition | str) -> str:
    return table.table_name if isinstance(table, TableDefinition) else str(table)


class Database:
    """Connection plus the definitions its tables are built from.

    ``initialized_tables`` holds the names of the tables and views created so
    far, in creation order.
    """

    def __init__(self, definition: DatabaseDefinition, cn: Connection) -> None:
        self.definition = definition
        self.connection = cn
        self.initialized_tables: dict[str, None] = {}

    def __enter__(self) -> 'Database':
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.connection.close()

    @contextmanager
    def with_tables(self, *tables: TableDefinition | str) -> Iterator[Connection]:
        """Make sure ``tables`` exist, then hand out the connection.
        """
        for table in tables:
            self.initialize_data_for(_table_name(table))
        yield self.connection

    def initialize_data_for(self, table_name: str) -> None:
        for ancestor in self.definition.table_ancestors(table_name):
            self._define(ancestor)
        self._define(self.definition.table_definition_for(table_name))

    def _define(self, table: TableDefinition) -> None:
        if table.table_name in self.initialized_tables:
            return
        table.define_data(self.connection)
        self.initialized_tables[table.table_name] = None

    def drop(self, name: str, object_type: str) -> None:
        self.connection.drop(name, object_type)
        self.initialized_tables.pop(name, None)

    def clear_database(self) -> None:
        self.connection.clear_database()
        self.initialized_tables.clear()

    def dump_database(self, filename: str) -> None:
        """Copy the initialized tables into a database file, dependencies first.

        Only what was pulled into the session is copied, not every definition.
        """
        copied: set[str] = set()
        self.connection.execute_batch(f'ATTACH {quote_literal(filename)} AS {DUMP_DATABASE_ALIAS};')
        try:
            for table_name in list(self.initialized_tables):
                tables = self.definition.table_ancestors(table_name)
                tables.append(self.definition.table_definition_for(table_name))
                for table in tables:
                    if table.table_name in copied:
                        logger.debug(f'{table.table_name} already dumped, skipping...')
                        continue
                    self.connection.execute_batch(table.copy_data_ddl(DUMP_DATABASE_ALIAS))
                    copied.add(table.table_name)
                    logger.info(f'Dumped {table.table_name} to {filename}')
        finally:
            self.connection.execute_batch(f'DETACH {DUMP_DATABASE_ALIAS};')

    def pretty_print(self, formatter: Formatter | None = None) -> str:
        text = self.definition.pretty_print(formatter or MermaidFormatter())
        logger.info(text)
        return text


def requires_tables(*tables: type[TableDefinition], database: str = 'database',
                    options: str = 'options') -> Callable:
    """Decorator creating tables before a method runs.

    Each class in ``tables`` is instantiated with the instance's ``options``
    mapping; its table is then initialized in the instance's ``database``.

    Usage:
        class Report:
            def __init__(self, database, options):
                self.database = database
                self.options = options

            @requires_tables(DailyTotals)
            def totals(self):
                return self.database.connection.query_rows('select * from daily_totals')
    """
    if not tables:
        raise ValidationError('requires_tables needs at least one table definition class')

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args: Any, **kwargs: Any):
            db = _instance_value(self, database)
            table_options = _instance_value(self, options)
            for table in tables:
                db.initialize_data_for(table(**table_options).table_name)
            return func(self, *args, **kwargs)
        return wrapper
    return decorator


def _instance_value(instance: Any, name: str) -> Any:
    value = getattr(instance, name, None)
    if callable(value):
        value = value()
    if value is None:
        raise ValidationError(f'{type(instance).__name__}.{name} is not set')
    return value
