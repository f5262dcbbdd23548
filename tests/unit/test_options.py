import pandas as pd
import pytest
from snowduck.exceptions import ValidationError
from snowduck.options import CREDENTIAL_ENV_VARS, ConnectionOptions
from snowduck.options import iterdict_data_loader, pandas_data_loader


@pytest.fixture
def no_env(monkeypatch):
    for env_var in CREDENTIAL_ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def credentials():
    return {
        'region': 'us-east-1',
        'access_key_id': 'AKIA123',
        'secret_access_key': 'shh-value',
    }


def test_init_defaults(credentials):
    """Test default initialization"""
    options = ConnectionOptions(**credentials)

    assert options.database == ':memory:'
    assert options.extensions == ('aws', 'httpfs')
    assert options.create_secret is True
    assert options.secret_name == 'aws_bucket_secrets'
    assert options.statement_cache_size == 16
    assert options.indifferent_access is True
    assert options.union_tags is False
    assert options.exact_timestamps is False
    assert options.max_depth == 64
    assert options.data_loader == iterdict_data_loader


def test_credentials_from_environment(no_env, monkeypatch):
    monkeypatch.setenv('S3_DUCKDB_REGION', 'eu-central-1')
    monkeypatch.setenv('S3_DUCKDB_ACCESS_KEY_ID', 'AKIAENV')
    monkeypatch.setenv('S3_DUCKDB_SECRET_ACCESS_KEY', 'envsecret')
    options = ConnectionOptions()
    assert options.region == 'eu-central-1'
    assert options.access_key_id == 'AKIAENV'
    assert options.secret_access_key == 'envsecret'


def test_explicit_credentials_win(credentials, monkeypatch):
    monkeypatch.setenv('S3_DUCKDB_REGION', 'eu-central-1')
    assert ConnectionOptions(**credentials).region == 'us-east-1'


@pytest.mark.parametrize('missing', ['region', 'access_key_id', 'secret_access_key'])
def test_missing_credential(no_env, credentials, missing):
    del credentials[missing]
    with pytest.raises(ValidationError) as excinfo:
        ConnectionOptions(**credentials)
    assert missing in str(excinfo.value)
    assert CREDENTIAL_ENV_VARS[missing] in str(excinfo.value)


def test_blank_credential(no_env, credentials):
    credentials['secret_access_key'] = '  '
    with pytest.raises(ValidationError):
        ConnectionOptions(**credentials)


@pytest.mark.parametrize('field', ['statement_cache_size', 'max_depth'])
def test_sizes_must_be_positive(credentials, field):
    with pytest.raises(ValidationError):
        ConnectionOptions(**credentials, **{field: 0})


def test_extensions_become_tuple(credentials):
    assert ConnectionOptions(**credentials, extensions=['httpfs']).extensions == ('httpfs',)
    assert ConnectionOptions(**credentials, extensions=None).extensions == ()


def test_repr_hides_secrets(credentials):
    text = repr(ConnectionOptions(**credentials))
    assert 'AKIA123' not in text
    assert 'shh-value' not in text
    assert 'us-east-1' in text


def test_iterdict_data_loader():
    assert iterdict_data_loader([], ['a']) == []
    assert iterdict_data_loader([{'a': 1}], ['a']) == [{'a': 1}]


def test_pandas_data_loader():
    frame = pandas_data_loader([{'a': 1, 'b': 'x'}], ['a', 'b'])
    assert isinstance(frame, pd.DataFrame)
    assert list(frame.columns) == ['a', 'b']
    assert frame.iloc[0]['b'] == 'x'


def test_pandas_data_loader_empty_keeps_columns():
    frame = pandas_data_loader([], ['a', 'b'])
    assert frame.empty
    assert list(frame.columns) == ['a', 'b']
