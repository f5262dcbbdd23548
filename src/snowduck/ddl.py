"""
Table definitions: how each table or view of a session is built.

A definition knows its table name, the SQL that produces it and the
definitions it depends on. There are three kinds:

1. `Table` with dependencies: a derived table, created from its query inside
   the session once its dependencies exist
2. `RemoteTable`: data exported by some outside system to the object store
   and ingested from there; the export itself is left to subclasses
3. `View`: a view over other definitions

`DatabaseDefinition` collects the definitions, rejects ambiguous names and
unknown dependencies, and orders them in a dependency DAG.

Usage:
    class Orders(RemoteTable):
        name = 'orders'

        def generate_ddl(self):
            return f"select * from orders where region = '{self.options.region}'"

        def export_table_data(self, cn):
            ...  # unload to s3 and return the file location

    class DailyTotals(Table):
        name = 'daily_totals'

        def generate_ddl(self):
            return 'select day, sum(amount) as total from orders group by day'

        def depends_on(self):
            return [Orders(region='eu')]

    definition = DatabaseDefinition([DailyTotals()])
"""
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, ClassVar

from snowduck.exceptions import QueryError, ValidationError
from snowduck.format import Formatter, StringFormatter
from snowduck.graph import DAG
from snowduck.sql import quote_identifier, quote_literal, quote_qualified_name
from snowduck.sql import require_word

from libb import attrdict

if TYPE_CHECKING:
    from snowduck.connection import Connection

__all__ = [
    'TableDefinition',
    'Table',
    'RemoteTable',
    'View',
    'DatabaseDefinition',
    'log_time',
]

logger = logging.getLogger(__name__)

_MISSING_REMOTE_FILE = re.compile(r'HTTP Error.*404', re.DOTALL)


@contextmanager
def log_time(message: str) -> Iterator[None]:
    """Log how long the block took."""
    start = time.time()
    logger.info(message)
    try:
        yield
    finally:
        logger.info(f'{message} done in {time.time() - start:.2f}s')


class TableDefinition(ABC):
    """Base class for everything a DatabaseDefinition can hold.

    Options given to the constructor are kept in ``options`` (with attribute
    access). A ``table_name`` option overrides the class ``name``, so one
    definition class can produce several differently named tables.
    """

    name: ClassVar[str | None] = None
    kind: ClassVar[str] = 'TABLE'

    def __init__(self, **options: Any) -> None:
        self.options = attrdict(options)
        self.ddl_query = self.generate_ddl()

    @property
    def table_name(self) -> str:
        table_name = self.options.get('table_name') or self.name
        if not table_name:
            raise ValidationError(f'{type(self).__name__} needs a name or a table_name option')
        return table_name

    @abstractmethod
    def generate_ddl(self) -> str:
        """SQL query producing the table's rows.
        """

    def depends_on(self) -> Sequence['TableDefinition | str']:
        """Definitions (or table names of definitions) this one is built from.
        """
        return []

    @abstractmethod
    def define_data(self, cn: 'Connection') -> None:
        """Create the table or view in the session.
        """

    def copy_data_ddl(self, database_alias: str) -> str:
        """Statement copying this table's rows into an attached database.
        """
        require_word(database_alias, 'database alias')
        table = quote_qualified_name(self.table_name)
        return f'CREATE TABLE {database_alias}.{table} AS SELECT * FROM {table};'

    def __repr__(self) -> str:
        return f'<{self.kind} {self.table_name}>'


class Table(TableDefinition):
    """Table built in the session. With dependencies it is derived from them.
    """

    @property
    def derived(self) -> bool:
        return bool(self.depends_on())

    def define_data(self, cn: 'Connection') -> None:
        if not self.derived:
            raise ValidationError(
                f'Table {self.table_name} has no dependencies and no remote data to load')
        with log_time(f'Creating derived table {self.table_name}'):
            cn.execute_batch(
                f'CREATE TABLE {quote_qualified_name(self.table_name)} AS ({self.ddl_query});')


class RemoteTable(Table):
    """Table whose rows are exported to the object store by an outside system.

    Subclasses implement ``export_table_data``, which runs the export and
    returns the location of the written file, and ``column_definitions``,
    used to create an empty table when the export wrote no file.
    """

    remote_file_type: ClassVar[str] = 'parquet'

    @abstractmethod
    def export_table_data(self, cn: 'Connection') -> str:
        """Export the rows of ``ddl_query`` and return the remote file location.
        """

    def column_definitions(self) -> dict[str, str]:
        """Column name to engine type, in column order.
        """
        raise NotImplementedError(f'{type(self).__name__} does not define its columns')

    def cleanup_remote_files(self, cn: 'Connection', location: str) -> None:
        """Remove the exported file once it is ingested.
        """

    def ingest_sql(self, cn: 'Connection', location: str) -> str:
        loads = ''.join(f'LOAD {extension}; ' for extension in cn.options.extensions)
        table = quote_qualified_name(self.table_name)
        if self.remote_file_type == 'parquet':
            source = f'read_parquet({quote_literal(location)})'
        elif self.remote_file_type == 'csv':
            # explicit types, an empty file would otherwise read as all VARCHAR
            types = ', '.join(f'{quote_literal(column)}: {quote_literal(dtype)}'
                              for column, dtype in self.column_definitions().items())
            source = f'read_csv({quote_literal(location)}, types = {{{types}}})'
        else:
            raise ValidationError(
                f'Unknown format {self.remote_file_type}, not sure how to export and ingest it')
        return f'{loads}CREATE TABLE {table} AS SELECT * FROM {source};'

    def define_data(self, cn: 'Connection') -> None:
        if self.derived:
            super().define_data(cn)
            return
        with log_time(f'Exporting {self.table_name}'):
            location = self.export_table_data(cn)
        try:
            with log_time(f'Ingesting {self.table_name} from {location}'):
                cn.execute_batch(self.ingest_sql(cn, location))
        except QueryError as exc:
            if not self._missing_remote_file(exc):
                raise
            logger.warning(f'Attempted to fetch non existing file: {location}, result set was probably empty')
            columns = ', '.join(f'{quote_identifier(column)} {dtype}'
                                for column, dtype in self.column_definitions().items())
            cn.execute_batch(f'CREATE TABLE {quote_qualified_name(self.table_name)} ({columns});')
            return
        with log_time(f'Deleting {location}'):
            self.cleanup_remote_files(cn, location)

    def _missing_remote_file(self, exc: QueryError) -> bool:
        # the export writes no parquet file for an empty result
        return self.remote_file_type == 'parquet' and bool(_MISSING_REMOTE_FILE.search(exc.message))


class View(TableDefinition):
    """View over other definitions.

    A dumped view is copied as a table holding its current rows.
    """

    kind = 'VIEW'

    def define_data(self, cn: 'Connection') -> None:
        with log_time(f'Creating view {self.table_name}'):
            cn.execute_batch(
                f'CREATE OR REPLACE VIEW {quote_qualified_name(self.table_name)} AS ({self.ddl_query});')


class DatabaseDefinition:
    """The table definitions of a session, ordered by their dependencies.

    Dependencies are followed recursively, so only the tables of interest
    need listing. Two definitions may share a table name only when they
    produce the same SQL.
    """

    def __init__(self, table_definitions: Sequence[TableDefinition]) -> None:
        if not table_definitions:
            raise ValidationError('You must provide at least one table definition')
        self.table_definitions = list(table_definitions)
        self.definitions = self._unwind(self.table_definitions)
        self.dag = self._build_dag()

    def _unwind(self, table_definitions: Sequence[TableDefinition]) -> dict[str, TableDefinition]:
        found: dict[str, TableDefinition] = {}
        ambiguous: set[str] = set()

        def visit(definition: TableDefinition) -> None:
            for dependency in definition.depends_on():
                if isinstance(dependency, TableDefinition):
                    visit(dependency)
            known = found.setdefault(definition.table_name, definition)
            if known.ddl_query != definition.ddl_query:
                ambiguous.add(definition.table_name)

        for definition in table_definitions:
            visit(definition)
        if ambiguous:
            raise ValidationError(
                f'Table(s) {sorted(ambiguous)} have multiple different DDL statements, '
                'give each a table_name option to keep them apart')
        return found

    def _build_dag(self) -> DAG:
        dag = DAG()
        for table_name in self.definitions:
            dag.add_vertex(table_name)
        for table_name, definition in self.definitions.items():
            for dependency in self.dependency_names(definition):
                if dependency not in self.definitions:
                    raise ValidationError(
                        f'Dependency {dependency} for table {table_name} is not in the tables list.')
                dag.add_edge(dependency, table_name)
        return dag

    @staticmethod
    def dependency_names(definition: TableDefinition) -> list[str]:
        names = []
        for dependency in definition.depends_on():
            name = dependency.table_name if isinstance(dependency, TableDefinition) else str(dependency)
            if name not in names:
                names.append(name)
        return names

    def table_definition_for(self, table_name: str) -> TableDefinition:
        try:
            return self.definitions[table_name]
        except KeyError:
            raise ValidationError(f'Unknown table {table_name}') from None

    def table_ancestors(self, table_name: str) -> list[TableDefinition]:
        """Every definition ``table_name`` is built from, dependencies first.
        """
        vertex = self.dag.find(table_name)
        if vertex is None:
            raise ValidationError(f'Unknown table {table_name}')
        return [self.definitions[ancestor.payload] for ancestor in vertex.ancestors()]

    def pretty_print(self, formatter: Formatter | None = None) -> str:
        formatter = formatter or StringFormatter()
        if not callable(getattr(formatter, 'format', None)):
            raise ValidationError("Formatter must implement the 'format' method")
        return formatter.format(self)
