import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pandas as pd
from snowduck.cache import DEFAULT_CAPACITY
from snowduck.exceptions import ValidationError

from libb import ConfigOptions

__all__ = [
    'ConnectionOptions',
    'CREDENTIAL_ENV_VARS',
    'iterdict_data_loader',
    'pandas_data_loader',
]

CREDENTIAL_ENV_VARS = {
    'region': 'S3_DUCKDB_REGION',
    'access_key_id': 'S3_DUCKDB_ACCESS_KEY_ID',
    'secret_access_key': 'S3_DUCKDB_SECRET_ACCESS_KEY',
}


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader, returns the keyed rows as a list.
    """
    if not data:
        return []
    return list(data)


def pandas_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Load keyed rows into a pandas DataFrame.

    Always returns a DataFrame, with the result's columns preserved when
    there are no rows.
    """
    if not data:
        return pd.DataFrame(columns=list(columns))
    return pd.DataFrame.from_records([dict(row) for row in data], columns=list(columns))


@dataclass
class ConnectionOptions(ConfigOptions):
    """Options

    Credentials for the S3 secret fall back to the S3_DUCKDB_REGION,
    S3_DUCKDB_ACCESS_KEY_ID and S3_DUCKDB_SECRET_ACCESS_KEY environment
    variables when not given.

    Engine setup options:
    - database: Engine database path (default: ':memory:')
    - extensions: Extensions installed when the connection opens
    - create_secret: Whether to register the S3 secret (default: True)
    - secret_name: Name of the registered secret

    Result options:
    - statement_cache_size: Prepared statements kept per connection (default: 16)
    - indifferent_access: Keyed rows allow attribute access (default: True)
    - union_tags: Union cells keep the name of their member (default: False)
    - exact_timestamps: Integer arithmetic for time values (default: False)
    - max_depth: Deepest nesting converted (default: 64)
    """
    region: str = None
    access_key_id: str = None
    secret_access_key: str = None
    database: str = ':memory:'
    extensions: tuple[str, ...] = ('aws', 'httpfs')
    create_secret: bool = True
    secret_name: str = 'aws_bucket_secrets'
    statement_cache_size: int = DEFAULT_CAPACITY
    indifferent_access: bool = True
    union_tags: bool = False
    exact_timestamps: bool = False
    max_depth: int = 64
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        for field_name, env_var in CREDENTIAL_ENV_VARS.items():
            if getattr(self, field_name) is None:
                setattr(self, field_name, os.getenv(env_var))
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(
                    f'Must provide valid {field_name}, either in options or as {env_var} env var')
        self.extensions = tuple(self.extensions or ())
        if self.statement_cache_size < 1:
            raise ValidationError('statement_cache_size must be at least 1')
        if self.max_depth < 1:
            raise ValidationError('max_depth must be at least 1')
        if self.data_loader is None:
            self.data_loader = iterdict_data_loader

    def __repr__(self) -> str:
        return (f'ConnectionOptions(region={self.region!r}, database={self.database!r}, '
                f'extensions={self.extensions!r}, secret_name={self.secret_name!r})')
