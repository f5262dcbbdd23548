"""
Formatters rendering the dependency structure of a database definition.
"""
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snowduck.ddl import DatabaseDefinition

__all__ = ['Formatter', 'StringFormatter', 'MermaidFormatter']


class Formatter(ABC):

    @abstractmethod
    def format(self, definition: 'DatabaseDefinition') -> str:
        """Render ``definition`` as text.
        """


class StringFormatter(Formatter):
    """One line per table naming what it depends on.
    """

    def format(self, definition: 'DatabaseDefinition') -> str:
        lines = ['Table Dependencies:', '']
        for table_name, table in definition.definitions.items():
            dependencies = definition.dependency_names(table)
            if dependencies:
                lines.append(f"{table_name} depends on: {', '.join(dependencies)}")
            else:
                lines.append(f'{table_name} has no dependencies.')
        return '\n'.join(lines) + '\n'


MERMAID_CONFIG = """---
config:
  layout: elk
  elk:
    mergeEdges: true
    nodePlacementStrategy: LINEAR_SEGMENTS
  theme: dark
---
"""


class MermaidFormatter(Formatter):
    """Mermaid flowchart, tables grouped in one subgraph per dependency level.
    """

    @staticmethod
    def node(table_name: str) -> str:
        return re.sub(r'\W', '_', str(table_name))

    def format(self, definition: 'DatabaseDefinition') -> str:
        lines = ['graph LR']
        for level, table_names in definition.dag.levels().items():
            lines.append(f'  subgraph Level{level}')
            lines.extend(f'    {self.node(name)}[{self.node(name)}]' for name in table_names)
            lines.append('  end')
        lines.extend(f'  {self.node(origin)} --> {self.node(destination)}'
                     for origin, destination in definition.dag.edges())
        return MERMAID_CONFIG + '\n'.join(lines) + '\n'
