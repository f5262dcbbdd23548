"""
Engine connection handling.

This module provides:
1. The `connect()` function that opens an engine session, installs the
   object store extensions and registers the S3 secret
2. The `Connection` class that owns the session, its prepared statement
   cache and the row projector
3. The `RowIterator` returned by `Connection.query`, which holds the
   connection exclusively until it is exhausted or closed

The Connection provides:
- execute(sql) - Run one statement and return the affected row count
- execute_batch(sql) - Run zero or more statements, no results
- query(sql) - Iterate the engine rows of a query
- query_rows(sql) - Rows as scalars (one column) or lists
- query_objects(sql) - Rows as column name mappings

Queries are plain SQL text. There is no parameter binding: literals must be
rendered into the SQL by the caller, and each distinct SQL text is its own
prepared statement. Only a single SELECT is kept in the statement cache;
anything else sent to `query` runs again on every call.
"""
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import fields
from functools import wraps
from typing import Any, Self

import duckdb
import pyarrow as pa
from snowduck.cache import StatementCache
from snowduck.conversion import ConversionContext, dedupe_names
from snowduck.exceptions import ConnectionBusyError, ConnectionFailure, DatabaseError
from snowduck.exceptions import EngineOpenError, ExtensionInstallError
from snowduck.exceptions import QueryError, SecretRegistrationError
from snowduck.exceptions import ValidationError, translate_errors
from snowduck.extract import rows_from_table
from snowduck.options import ConnectionOptions
from snowduck.row import RowProjector, resolve_key_adapter
from snowduck.sql import is_blank, quote_identifier, quote_literal
from snowduck.sql import quote_qualified_name, require_word
from snowduck.values import Row

from libb import load_options

__all__ = [
    'Connection',
    'RowIterator',
    'connect',
    'install_extensions',
    'register_secret',
    'DROPPABLE_OBJECT_TYPES',
]

logger = logging.getLogger(__name__)

DROPPABLE_OBJECT_TYPES = ('table', 'view', 'macro', 'function')
DUMP_DATABASE_ALIAS = 'file_dump_database'

CACHEABLE_STATEMENTS = frozenset({duckdb.StatementType.SELECT})
CHANGE_STATEMENTS = frozenset({
    duckdb.StatementType.INSERT,
    duckdb.StatementType.UPDATE,
    duckdb.StatementType.DELETE,
})


def dumpsql(func):
    """Decorator for logging SQL statements and timing them."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def arrow_table(relation: Any) -> pa.Table:
    """Run a relation and collect its result as one Arrow table.

    Depending on the engine release ``arrow()`` returns a table or a record
    batch reader.
    """
    result = relation.arrow()
    if isinstance(result, pa.RecordBatchReader):
        return result.read_all()
    return result


class RowIterator:
    """Iterator over the engine rows of one query.

    The result is fully materialized before the iterator is created. While
    the iterator is open the connection refuses other work; it is released
    once the rows are exhausted, on ``close()``, or when leaving a ``with``
    block.
    """

    def __init__(self, rows: Iterator[Row], columns: list[str],
                 release: Callable[[], None] | None = None) -> None:
        self.columns = columns
        self._rows = rows
        self._release = release

    def __iter__(self) -> Self:
        return self

    def __next__(self) -> Row:
        if self._rows is None:
            raise StopIteration
        try:
            return next(self._rows)
        except BaseException:
            self.close()
            raise

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._rows is None

    def close(self) -> None:
        self._rows = None
        release, self._release = self._release, None
        if release is not None:
            release()


class Connection:
    """Wraps one engine session.

    This class:
    1. Caches prepared statements by SQL text
    2. Converts results through a RowProjector configured once from options
    3. Allows at most one live row iteration, failing fast on overlap or
       concurrent use from another thread
    4. Tracks query execution counts and timing
    5. Supports context manager protocol for explicit resource management
    """

    def __init__(self, engine: Any, options: ConnectionOptions,
                 on_compile: Callable[[str], None] | None = None) -> None:
        self.engine = engine
        self.options = options
        self.statements = StatementCache(options.statement_cache_size, on_compile)
        self.projector = RowProjector(
            ConversionContext(
                union_tags=options.union_tags,
                exact_timestamps=options.exact_timestamps,
                max_depth=options.max_depth),
            resolve_key_adapter(options.indifferent_access))
        self.calls = 0
        self.time = 0
        self.closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def close(self) -> None:
        """Close the engine session and drop cached statements.
        """
        if self.closed:
            return
        self.statements.clear()
        self.engine.close()
        self.closed = True
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def _claim(self) -> None:
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        if not self._lock.acquire(blocking=False):
            raise ConnectionBusyError(
                'Connection is busy: a row iteration is still open or another thread is using it')

    def _release(self) -> None:
        self._lock.release()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self._claim()
        try:
            yield
        finally:
            self._release()

    def execute(self, sql: str) -> int:
        """Execute a single statement and return the affected row count.
        """
        with self._exclusive():
            return self._execute(sql)

    @dumpsql
    def _execute(self, sql: str) -> int:
        kinds = self._statement_types(sql)
        with translate_errors('Statement failed'):
            result = self.engine.execute(sql)
            if not kinds or kinds[-1] not in CHANGE_STATEMENTS or result.description is None:
                return 0
            names = [column[0] for column in result.description]
            rows = result.fetchall()
        # plain changes report one 'Count' row, RETURNING reports the changed rows
        if names == ['Count'] and len(rows) == 1:
            return int(rows[0][0])
        return len(rows)

    def _statement_types(self, sql: str) -> list[Any]:
        with translate_errors('Could not prepare statement'):
            return [statement.type for statement in self.engine.extract_statements(sql)]

    def execute_batch(self, sql: str) -> None:
        """Execute zero or more statements, discarding any results.
        """
        with self._exclusive():
            if is_blank(sql):
                logger.debug('Skipping empty batch')
                return
            self._execute_batch(sql)

    @dumpsql
    def _execute_batch(self, sql: str) -> None:
        with translate_errors('Batch failed'):
            self.engine.execute(sql)

    def query(self, sql: str) -> RowIterator:
        """Run a query and iterate its rows.

        The connection stays claimed until the returned iterator is exhausted
        or closed.
        """
        self._claim()
        try:
            table, engine_types = self._run_query(sql)
        except BaseException:
            self._release()
            raise
        if table is None:
            return RowIterator(iter(()), [], self._release)
        return RowIterator(rows_from_table(table, engine_types),
                           dedupe_names(table.schema.names), self._release)

    @dumpsql
    def _run_query(self, sql: str) -> tuple[pa.Table | None, list[str]]:
        kinds = self._statement_types(sql)
        cacheable = len(kinds) == 1 and kinds[0] in CACHEABLE_STATEMENTS
        if cacheable:
            relation = self.statements.get(sql, self._compile)
        else:
            # runs now, every call, and is never reused
            relation = self._compile(sql)
        if relation is None:
            logger.debug('Statement produced no result relation')
            return None, []
        try:
            with translate_errors('Query failed'):
                engine_types = [str(dtype) for dtype in relation.types]
                table = arrow_table(relation)
        except QueryError:
            if cacheable:
                self.statements.evict(sql)
            raise
        return table, engine_types

    def _compile(self, sql: str) -> Any:
        with translate_errors('Could not prepare statement'):
            return self.engine.sql(sql)

    def query_rows(self, sql: str) -> list[Any]:
        """Run a query and return every row in array mode.

        A row with one column is returned as that column's value, wider rows
        as lists in column order.
        """
        with self.query(sql) as rows:
            result = self.projector.project_rows(rows)
        logger.debug(f'Query returned {len(result)} rows')
        return result

    def query_objects(self, sql: str) -> Any:
        """Run a query and return every row as a column name mapping.

        The rows are passed through the configured data loader.
        """
        with self.query(sql) as rows:
            data = self.projector.project_objects(rows)
            columns = rows.columns
        logger.debug(f'Query returned {len(data)} rows')
        return self.options.data_loader(data, columns)

    def tables_info(self) -> Any:
        """Describe the user tables of the session.
        """
        return self.query_objects('select * from duckdb_tables();')

    def views_info(self) -> Any:
        """Describe the user views of the session.
        """
        return self.query_objects('select * from duckdb_views() where not internal;')

    def memory_info(self) -> Any:
        """Report the engine's memory usage by component.
        """
        return self.query_objects('select * from duckdb_memory();')

    def drop(self, name: str, object_type: str) -> None:
        """Drop a table, view, macro or function if it exists.
        """
        object_type = str(object_type).lower()
        if object_type not in DROPPABLE_OBJECT_TYPES:
            raise ValidationError(f'Unknown object type {object_type}')
        self.execute(f'DROP {object_type.upper()} IF EXISTS {quote_qualified_name(name)};')

    def clear_database(self) -> None:
        """Drop every user view and table.
        """
        for info in self.query_objects('select schema_name, view_name from duckdb_views() where not internal;'):
            logger.info(f"Dropping view {info['view_name']}")
            self.drop(f"{info['schema_name']}.{info['view_name']}", 'view')
        for info in self.query_objects('select schema_name, table_name from duckdb_tables();'):
            logger.info(f"Dropping table {info['table_name']}")
            self.drop(f"{info['schema_name']}.{info['table_name']}", 'table')

    def dump_database(self, filename: str) -> None:
        """Copy every user table of the session into a database file.
        """
        tables = self.query_rows(
            'select schema_name, table_name from duckdb_tables() '
            'where database_name = current_database();')
        self.execute_batch(f'ATTACH {quote_literal(filename)} AS {DUMP_DATABASE_ALIAS};')
        try:
            for schema_name, table_name in tables:
                source = f'{quote_identifier(schema_name)}.{quote_identifier(table_name)}'
                target = f'{DUMP_DATABASE_ALIAS}.{quote_identifier(table_name)}'
                self.execute_batch(f'CREATE TABLE {target} AS SELECT * FROM {source};')
                logger.info(f'Dumped table {table_name} to {filename}')
        finally:
            self.execute_batch(f'DETACH {DUMP_DATABASE_ALIAS};')


def install_extensions(engine: Any, extensions: tuple[str, ...]) -> None:
    """Install the named engine extensions.
    """
    for extension in extensions:
        require_word(extension, 'extension name')
        with translate_errors(f'Could not install extension {extension}', ExtensionInstallError):
            engine.execute(f'INSTALL {extension};')
        logger.debug(f'Installed extension {extension}')


def _redact(text: str, *secrets: str) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, '***')
    return text


def register_secret(engine: Any, options: ConnectionOptions) -> None:
    """Register the S3 secret built from the connection credentials.

    The statement embeds the credentials, so neither it nor engine messages
    that may echo it are logged unredacted.
    """
    name = require_word(options.secret_name, 'secret name')
    statement = (
        f'CREATE SECRET {name} (TYPE S3, '
        f'KEY_ID {quote_literal(options.access_key_id)}, '
        f'SECRET {quote_literal(options.secret_access_key)}, '
        f'REGION {quote_literal(options.region)})')
    try:
        engine.execute(statement)
    except duckdb.Error as exc:
        message = _redact(str(exc), options.access_key_id, options.secret_access_key)
        logger.error(f'Could not create secret {name}: {message}')
        raise SecretRegistrationError(f'Could not create secret {name}: {message}') from None
    logger.debug(f'Registered secret {name}')


def connect(options: ConnectionOptions | dict[str, Any] | str | None = None,
            config: Any | None = None,
            engine_factory: Callable[..., Any] = duckdb.connect,
            on_compile: Callable[[str], None] | None = None,
            **kw: Any) -> Connection:
    """Open an engine session and wrap it in a Connection.

    Args:
        options: Can be:
                - ConnectionOptions object
                - Dictionary of options
                - String name of a configuration setting
                - None, with options given as keyword arguments
        config: Configuration object (for loading from config files)
        engine_factory: Callable opening the engine session
        on_compile: Called with the SQL text whenever a statement is compiled
        **kw: Additional keyword arguments to override options

    Raises
        ValidationError: The options are missing or invalid
        EngineOpenError: The engine session could not be opened
        ExtensionInstallError: An extension could not be installed
        SecretRegistrationError: The S3 secret could not be registered
    """
    if isinstance(options, ConnectionOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    elif options is None or isinstance(options, dict):
        options = ConnectionOptions(**{**(options or {}), **kw})
    else:
        options_func = load_options(cls=ConnectionOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    try:
        engine = engine_factory(database=options.database)
    except duckdb.Error as exc:
        logger.error(f'Could not open database {options.database}: {exc}')
        raise EngineOpenError(f'Could not open database {options.database}: {exc}') from exc

    try:
        install_extensions(engine, options.extensions)
        if options.create_secret:
            register_secret(engine, options)
    except DatabaseError:
        engine.close()
        raise

    logger.debug(f'Opened connection to {options.database}')
    return Connection(engine, options, on_compile=on_compile)
