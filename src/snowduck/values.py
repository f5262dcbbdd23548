"""
Engine value model.

Every value an engine column cell can hold is one of the frozen dataclasses
below. ``SourceValue`` is the closed union of all of them; consumers match on
it exhaustively and finish with ``typing.assert_never`` so that a new variant
is flagged by the type checker at every consumer.
"""
import enum
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeAlias


class TimeUnit(enum.Enum):
    """Resolution of a time or timestamp value, with subdivisions per second.
    """
    SECOND = 1
    MILLISECOND = 1_000
    MICROSECOND = 1_000_000
    NANOSECOND = 1_000_000_000

    @property
    def per_second(self) -> int:
        return self.value

    @classmethod
    def from_arrow(cls, unit: str) -> 'TimeUnit':
        """Map an Arrow unit string ('s', 'ms', 'us', 'ns') to a TimeUnit.
        """
        return _ARROW_UNITS[unit]


_ARROW_UNITS = {
    's': TimeUnit.SECOND,
    'ms': TimeUnit.MILLISECOND,
    'us': TimeUnit.MICROSECOND,
    'ns': TimeUnit.NANOSECOND,
}


@dataclass(frozen=True, slots=True)
class Null:
    pass


@dataclass(frozen=True, slots=True)
class Boolean:
    value: bool


@dataclass(frozen=True, slots=True)
class Int8:
    value: int


@dataclass(frozen=True, slots=True)
class Int16:
    value: int


@dataclass(frozen=True, slots=True)
class Int32:
    value: int


@dataclass(frozen=True, slots=True)
class Int64:
    value: int


@dataclass(frozen=True, slots=True)
class UInt8:
    value: int


@dataclass(frozen=True, slots=True)
class UInt16:
    value: int


@dataclass(frozen=True, slots=True)
class UInt32:
    value: int


@dataclass(frozen=True, slots=True)
class UInt64:
    value: int


@dataclass(frozen=True, slots=True)
class Float32:
    value: float


@dataclass(frozen=True, slots=True)
class Float64:
    value: float


@dataclass(frozen=True, slots=True)
class Decimal:
    """Fixed point number: ``unscaled * 10 ** -scale``.
    """
    unscaled: int
    scale: int

    def __post_init__(self) -> None:
        if self.scale < 0:
            raise ValueError(f'Decimal scale must be non-negative, got {self.scale}')


@dataclass(frozen=True, slots=True)
class HugeInt:
    """128-bit signed integer.
    """
    value: int


@dataclass(frozen=True, slots=True)
class UHugeInt:
    """128-bit unsigned integer.
    """
    value: int


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Blob:
    value: bytes


@dataclass(frozen=True, slots=True)
class Date32:
    """Days since 1970-01-01, may be negative.
    """
    days: int


@dataclass(frozen=True, slots=True)
class Time:
    unit: TimeUnit
    value: int


@dataclass(frozen=True, slots=True)
class Timestamp:
    unit: TimeUnit
    value: int


@dataclass(frozen=True, slots=True)
class Interval:
    months: int
    days: int
    nanos: int


@dataclass(frozen=True, slots=True)
class List:
    values: tuple['SourceValue', ...]


@dataclass(frozen=True, slots=True)
class Array:
    """Fixed length list.
    """
    values: tuple['SourceValue', ...]


@dataclass(frozen=True, slots=True)
class Struct:
    """Ordered ``(name, value)`` pairs; names are not required to be unique.
    """
    fields: tuple[tuple[str, 'SourceValue'], ...]


@dataclass(frozen=True, slots=True)
class Map:
    """Ordered ``(key, value)`` pairs; keys may be any SourceValue.
    """
    entries: tuple[tuple['SourceValue', 'SourceValue'], ...]


@dataclass(frozen=True, slots=True)
class Enum:
    label: str


@dataclass(frozen=True, slots=True)
class Union:
    """Value of a union column; ``tag`` names the member that is set.
    """
    tag: str | None
    inner: 'SourceValue'


SourceValue: TypeAlias = (
    Null | Boolean
    | Int8 | Int16 | Int32 | Int64
    | UInt8 | UInt16 | UInt32 | UInt64
    | Float32 | Float64 | Decimal | HugeInt | UHugeInt
    | Text | Blob | Date32 | Time | Timestamp | Interval
    | List | Array | Struct | Map | Enum | Union
)

# One result record: (column name, value) pairs in column order.
Row: TypeAlias = Sequence[tuple[str, SourceValue]]

NULL = Null()


def column_names(row: Row) -> list[str]:
    return [name for name, _ in row]
