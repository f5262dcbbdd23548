"""
Snowduck exception classes and engine error translation.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import duckdb

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base class for all snowduck errors.

    Every error raised across the package boundary is an instance of this
    class and carries a human readable ``message``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConnectionFailure(DatabaseError):
    """Error establishing the engine session.
    """


class EngineOpenError(ConnectionFailure):
    """The engine session could not be opened.
    """


class ExtensionInstallError(ConnectionFailure):
    """An engine extension could not be installed.
    """


class SecretRegistrationError(ConnectionFailure):
    """The object store secret could not be registered.
    """


class QueryError(DatabaseError):
    """Error in query syntax or execution.
    """


class StatementPrepareError(QueryError):
    """The statement could not be parsed, bound or planned.
    """


class QueryExecutionError(QueryError):
    """The statement failed while executing.
    """


class ConnectionBusyError(DatabaseError):
    """The connection is already in use by a live row iteration or another thread.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class TypeConversionError(DatabaseError):
    """Error converting an engine value into a Python value.
    """


class ConversionDepthError(TypeConversionError):
    """A nested value exceeded the configured recursion depth.
    """


class ColumnConversionError(TypeConversionError):
    """A cell of a result row could not be converted.

    Carries the name of the offending column and the underlying cause.
    """

    def __init__(self, column_name: str, cause: BaseException) -> None:
        super().__init__(f'Error converting value of column {column_name} : {cause}')
        self.column_name = column_name
        self.cause = cause


DbConnectionError = (
    duckdb.ConnectionException,
    duckdb.IOException,
    duckdb.HTTPException,
    ConnectionFailure,
    )

ProgrammingError = (
    duckdb.ParserException,
    duckdb.BinderException,
    duckdb.CatalogException,
    duckdb.ProgrammingError,
    StatementPrepareError,
    )

OperationalError = (
    duckdb.OperationalError,
    duckdb.InvalidInputException,
    duckdb.ConversionException,
    duckdb.OutOfRangeException,
    QueryExecutionError,
    )


PREPARE_ERRORS = (
    duckdb.ParserException,
    duckdb.BinderException,
    duckdb.CatalogException,
    )


def classify_engine_error(exc: BaseException) -> type[QueryError]:
    """Statement errors the engine reports while parsing or binding are
    prepare errors, everything else failed during execution.
    """
    if isinstance(exc, PREPARE_ERRORS):
        return StatementPrepareError
    return QueryExecutionError


@contextmanager
def translate_errors(context: str,
                     error_cls: type[DatabaseError] | None = None) -> Iterator[None]:
    """Translate engine failures raised inside the block into snowduck errors.

    Without ``error_cls`` the class is picked by ``classify_engine_error``.
    Errors that are already snowduck errors pass through untouched so the
    first translation wins.
    """
    try:
        yield
    except DatabaseError:
        raise
    except duckdb.Error as exc:
        cls = error_cls or classify_engine_error(exc)
        logger.error(f'{context}: {exc}')
        raise cls(f'{context}: {exc}') from exc
