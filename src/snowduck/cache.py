"""
Prepared statement cache.

Statements are keyed by the exact SQL text the caller supplied. There is no
parameter binding: two queries that differ only in an inlined literal are two
different entries. Uses a cachetools LRUCache so the least recently used
statement is dropped once the capacity is reached.
"""
import logging
from collections.abc import Callable
from typing import Any

import cachetools

logger = logging.getLogger(__name__)

__all__ = ['StatementCache', 'DEFAULT_CAPACITY']

DEFAULT_CAPACITY = 16


class StatementCache:
    """LRU cache of compiled statements owned by one connection.

    ``compilations`` and ``hits`` count how often ``get`` had to compile and
    how often it reused an entry. ``on_compile``, when given, is called with
    the SQL text each time a statement is compiled.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY,
                 on_compile: Callable[[str], None] | None = None) -> None:
        self._cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=max(1, capacity))
        self.on_compile = on_compile
        self.compilations = 0
        self.hits = 0

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, sql: str) -> bool:
        return sql in self._cache

    @property
    def capacity(self) -> int:
        return int(self._cache.maxsize)

    def get(self, sql: str, compile_fn: Callable[[str], Any]) -> Any:
        """Return the cached statement for ``sql``, compiling it on a miss.

        ``compile_fn`` may return None for statements that have nothing to
        cache (they ran to completion while compiling); those are not stored.
        """
        if sql in self._cache:
            self.hits += 1
            logger.debug('Statement cache hit')
            return self._cache[sql]

        logger.debug('Statement cache miss, compiling')
        statement = compile_fn(sql)
        self.compilations += 1
        if self.on_compile is not None:
            self.on_compile(sql)
        if statement is not None:
            self._cache[sql] = statement
        return statement

    def evict(self, sql: str) -> None:
        if self._cache.pop(sql, None) is not None:
            logger.debug('Evicted statement from cache')

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> dict[str, int]:
        return {
            'size': len(self._cache),
            'capacity': self.capacity,
            'compilations': self.compilations,
            'hits': self.hits,
        }
