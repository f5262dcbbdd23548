"""
SQL rendering helpers for statements the package builds itself.
"""
import re

from snowduck.exceptions import ValidationError

__all__ = [
    'quote_identifier',
    'quote_qualified_name',
    'quote_literal',
    'require_word',
    'is_blank',
]

_WORD = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_COMMENT_OR_SPACE = re.compile(r'(--[^\n]*|/\*.*?\*/|\s|;)+', re.DOTALL)


def quote_identifier(identifier: str) -> str:
    """Safely quote a database identifier.

    Parameters
        identifier: Table, view or column name

    Returns
        Double quoted identifier with embedded quotes doubled
    """
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(f'Invalid identifier: {identifier!r}')
    return '"' + identifier.replace('"', '""') + '"'


def quote_qualified_name(name: str) -> str:
    """Quote each part of a dotted name, e.g. main.events -> "main"."events".
    """
    if not isinstance(name, str) or not name:
        raise ValidationError(f'Invalid identifier: {name!r}')
    return '.'.join(quote_identifier(part) for part in name.split('.'))


def quote_literal(value: str) -> str:
    """Render a string as a single quoted SQL literal.
    """
    return "'" + value.replace("'", "''") + "'"


def require_word(value: str, what: str) -> str:
    """Validate a bare SQL word such as an extension or secret name.
    """
    if not isinstance(value, str) or not _WORD.match(value):
        raise ValidationError(f'Invalid {what}: {value!r}')
    return value


def is_blank(sql: str) -> bool:
    """True when ``sql`` holds nothing but whitespace, comments and semicolons.
    """
    return _COMMENT_OR_SPACE.sub('', sql) == ''
