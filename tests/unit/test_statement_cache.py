import pytest
from snowduck.cache import DEFAULT_CAPACITY, StatementCache


@pytest.fixture
def compiler(mocker):
    return mocker.Mock(side_effect=lambda sql: f'compiled:{sql}')


def test_default_capacity():
    assert StatementCache().capacity == DEFAULT_CAPACITY == 16


def test_identical_sql_compiles_once(compiler):
    cache = StatementCache()
    assert cache.get('select 1', compiler) == 'compiled:select 1'
    assert cache.get('select 1', compiler) == 'compiled:select 1'
    assert compiler.call_count == 1
    assert cache.compilations == 1
    assert cache.hits == 1


def test_sql_text_is_the_key(compiler):
    cache = StatementCache()
    cache.get('select 1', compiler)
    cache.get('select  1', compiler)
    assert cache.compilations == 2
    assert len(cache) == 2


def test_least_recently_used_is_dropped(compiler):
    cache = StatementCache(capacity=2)
    cache.get('a', compiler)
    cache.get('b', compiler)
    cache.get('a', compiler)
    cache.get('c', compiler)
    assert 'a' in cache
    assert 'b' not in cache
    assert len(cache) == 2


def test_none_is_not_stored(mocker):
    cache = StatementCache()
    compile_fn = mocker.Mock(return_value=None)
    assert cache.get('create table t (i int)', compile_fn) is None
    assert cache.get('create table t (i int)', compile_fn) is None
    assert compile_fn.call_count == 2
    assert len(cache) == 0


def test_on_compile_hook(compiler, mocker):
    hook = mocker.Mock()
    cache = StatementCache(on_compile=hook)
    cache.get('select 1', compiler)
    cache.get('select 1', compiler)
    hook.assert_called_once_with('select 1')


def test_compile_failure_is_not_cached(mocker):
    cache = StatementCache()
    compile_fn = mocker.Mock(side_effect=RuntimeError('bad'))
    with pytest.raises(RuntimeError):
        cache.get('selec', compile_fn)
    assert 'selec' not in cache
    assert cache.compilations == 0


def test_evict_and_clear(compiler):
    cache = StatementCache()
    cache.get('a', compiler)
    cache.get('b', compiler)
    cache.evict('a')
    cache.evict('missing')
    assert 'a' not in cache
    cache.clear()
    assert len(cache) == 0
    assert cache.stats() == {'size': 0, 'capacity': 16, 'compilations': 2, 'hits': 0}
