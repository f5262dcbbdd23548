"""
Directed acyclic graph used to order table definitions by dependency.

Vertices carry a hashable payload (a table name). An edge runs from a
dependency to the table that depends on it; adding an edge that would close a
cycle is refused.
"""
from collections.abc import Hashable, Iterator
from typing import Any

from snowduck.exceptions import ValidationError

__all__ = ['DAG', 'Vertex']


class Vertex:

    def __init__(self, dag: 'DAG', payload: Hashable) -> None:
        self.dag = dag
        self.payload = payload
        self.successors: list[Vertex] = []

    @property
    def predecessors(self) -> list['Vertex']:
        return [vertex for vertex in self.dag.vertices if self in vertex.successors]

    def path_to(self, other: 'Vertex') -> bool:
        """True when ``other`` can be reached from here following edges.
        """
        return any(vertex is other or vertex.path_to(other) for vertex in self.successors)

    def ancestors(self) -> list['Vertex']:
        """Every vertex with a path to this one, each listed after its own ancestors.
        """
        ordered: list[Vertex] = []

        def visit(vertex: Vertex) -> None:
            for predecessor in vertex.predecessors:
                if predecessor not in ordered:
                    visit(predecessor)
                    ordered.append(predecessor)

        visit(self)
        return ordered

    def descendants(self) -> set['Vertex']:
        found: set[Vertex] = set()
        pending = list(self.successors)
        while pending:
            vertex = pending.pop()
            if vertex not in found:
                found.add(vertex)
                pending.extend(vertex.successors)
        return found

    def __repr__(self) -> str:
        return f'Vertex({self.payload!r})'


class DAG:
    """Directed acyclic graph of payloads.
    """

    def __init__(self) -> None:
        self.vertices: list[Vertex] = []

    def __contains__(self, payload: Any) -> bool:
        return self.find(payload) is not None

    def __iter__(self) -> Iterator[Vertex]:
        return iter(self.vertices)

    def find(self, payload: Any) -> Vertex | None:
        return next((vertex for vertex in self.vertices if vertex.payload == payload), None)

    def add_vertex(self, payload: Hashable) -> Vertex:
        """Add a vertex for ``payload``, or return the one already holding it.
        """
        vertex = self.find(payload)
        if vertex is None:
            vertex = Vertex(self, payload)
            self.vertices.append(vertex)
        return vertex

    def add_edge(self, origin: Hashable, destination: Hashable) -> None:
        origin_vertex = self.find(origin)
        destination_vertex = self.find(destination)
        if origin_vertex is None:
            raise ValidationError(f'Origin {origin} must be a vertex in this DAG')
        if destination_vertex is None:
            raise ValidationError(f'Destination {destination} must be a vertex in this DAG')
        if destination_vertex in origin_vertex.successors:
            raise ValidationError(f'Edge from {origin} to {destination} already exists')
        if origin_vertex is destination_vertex or destination_vertex.path_to(origin_vertex):
            raise ValidationError(f'A DAG must not have cycles ({origin} -> {destination})')
        origin_vertex.successors.append(destination_vertex)

    def edges(self) -> list[tuple[Hashable, Hashable]]:
        return [(vertex.payload, successor.payload)
                for vertex in self.vertices for successor in vertex.successors]

    def levels(self) -> dict[int, list[Hashable]]:
        """Group payloads by depth: vertices without predecessors are level 1,
        every other vertex sits one level below its deepest predecessor.
        """
        memo: dict[Hashable, int] = {}

        def level(vertex: Vertex) -> int:
            if vertex.payload not in memo:
                predecessors = vertex.predecessors
                memo[vertex.payload] = 1 + max((level(p) for p in predecessors), default=0)
            return memo[vertex.payload]

        grouped: dict[int, list[Hashable]] = {}
        for vertex in self.vertices:
            grouped.setdefault(level(vertex), []).append(vertex.payload)
        return dict(sorted(grouped.items()))
