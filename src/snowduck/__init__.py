"""
Snowduck: DuckDB sessions with S3 access and exact Python result conversion.

All query operations can be called either as:
- Module functions: snowduck.query_rows(cn, sql)
- Connection methods: cn.query_rows(sql)

The module functions are facades over the Connection methods.
"""
__version__ = '0.1.0'

from typing import Any

from snowduck.connection import Connection, RowIterator, connect
from snowduck.conversion import ConversionContext, TaggedValue, convert
from snowduck.database import Database, requires_tables
from snowduck.ddl import DatabaseDefinition, RemoteTable, Table, View
from snowduck.exceptions import ColumnConversionError, ConnectionBusyError
from snowduck.exceptions import ConnectionFailure, ConversionDepthError
from snowduck.exceptions import DatabaseError, DbConnectionError
from snowduck.exceptions import EngineOpenError, ExtensionInstallError
from snowduck.exceptions import OperationalError, ProgrammingError
from snowduck.exceptions import QueryError, QueryExecutionError
from snowduck.exceptions import SecretRegistrationError, StatementPrepareError
from snowduck.exceptions import TypeConversionError, ValidationError
from snowduck.options import ConnectionOptions, iterdict_data_loader
from snowduck.options import pandas_data_loader


def execute(cn: Connection, sql: str) -> int:
    """Execute a SQL statement and return affected row count.
    """
    return cn.execute(sql)


def execute_batch(cn: Connection, sql: str) -> None:
    """Execute zero or more SQL statements.
    """
    cn.execute_batch(sql)


def query(cn: Connection, sql: str) -> RowIterator:
    """Iterate the engine rows of a query.
    """
    return cn.query(sql)


def query_rows(cn: Connection, sql: str) -> list[Any]:
    """Execute a query and return rows in array mode.
    """
    return cn.query_rows(sql)


def query_objects(cn: Connection, sql: str) -> Any:
    """Execute a query and return rows keyed by column name.
    """
    return cn.query_objects(sql)


__all__ = [
    # Connection
    'connect',
    'Connection',
    'ConnectionOptions',
    'RowIterator',
    # Operations
    'execute',
    'execute_batch',
    'query',
    'query_rows',
    'query_objects',
    # Table definitions
    'Database',
    'DatabaseDefinition',
    'Table',
    'RemoteTable',
    'View',
    'requires_tables',
    # Conversion
    'convert',
    'ConversionContext',
    'TaggedValue',
    # Data loaders
    'iterdict_data_loader',
    'pandas_data_loader',
    # Exceptions
    'DatabaseError',
    'ConnectionFailure',
    'EngineOpenError',
    'ExtensionInstallError',
    'SecretRegistrationError',
    'QueryError',
    'StatementPrepareError',
    'QueryExecutionError',
    'ConnectionBusyError',
    'ValidationError',
    'TypeConversionError',
    'ConversionDepthError',
    'ColumnConversionError',
    'DbConnectionError',
    'ProgrammingError',
    'OperationalError',
]
