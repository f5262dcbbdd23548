import importlib

import pytest

# modules in dependency order, leaves first
MODULES = [
    'snowduck.exceptions',
    'snowduck.values',
    'snowduck.cache',
    'snowduck.sql',
    'snowduck.graph',
    'snowduck.format',
    'snowduck.conversion',
    'snowduck.extract',
    'snowduck.row',
    'snowduck.options',
    'snowduck.connection',
    'snowduck.ddl',
    'snowduck.database',
    'snowduck',
]


@pytest.mark.parametrize('module', MODULES)
def test_module_imports(module):
    """Each module imports on its own, without circular dependencies"""
    assert importlib.import_module(module) is not None


def test_public_names_resolve():
    package = importlib.import_module('snowduck')
    missing = [name for name in package.__all__ if not hasattr(package, name)]
    assert missing == []
