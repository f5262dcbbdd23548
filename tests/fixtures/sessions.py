"""
DuckDB session fixtures.

Sessions are in-memory and skip extension install and secret registration,
so no network access is needed.
"""
import config
import pytest
import snowduck


@pytest.fixture
def duck_conn():
    """Connection built from the test configuration settings"""
    cn = snowduck.connect('duckdb', config=config)
    yield cn
    cn.close()


@pytest.fixture
def make_conn():
    """Factory for connections with option overrides"""
    opened = []

    def _make(**overrides):
        options = {
            'region': config.duckdb.region,
            'access_key_id': config.duckdb.access_key_id,
            'secret_access_key': config.duckdb.secret_access_key,
            'extensions': (),
            'create_secret': False,
        }
        options.update(overrides)
        cn = snowduck.connect(options)
        opened.append(cn)
        return cn

    yield _make
    for cn in opened:
        cn.close()


@pytest.fixture
def events_table(duck_conn):
    """Small events table with mixed column types"""
    duck_conn.execute_batch("""
create table events (
    id integer,
    name varchar,
    amount decimal(10, 2),
    happened date
);
insert into events values
    (1, 'open', 10.50, date '2024-01-15'),
    (2, 'close', 20.25, date '2024-01-16'),
    (3, 'open', 0.00, date '2024-01-17');
""")
    return duck_conn
