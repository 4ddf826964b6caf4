"""
Decoded protocol data structures

FieldDescriptor and ResultBundle are immutable once the response reader
hands them back; a Row is a plain tuple of nullable byte payloads.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

Row = Tuple[Optional[bytes], ...]


class SessionStatus(Enum):
    """Lifecycle state of a session"""
    OPEN = "open"
    BROKEN = "broken"


@dataclass(frozen=True)
class FieldDescriptor:
    """One column of a result group, as described by a 'T' message"""
    name: str
    type_oid: int
    type_length: int


@dataclass(frozen=True)
class ResultBundle:
    """
    Outcome of one simple query.

    An empty ``fields`` tuple means the statement produced no row-oriented
    result (INSERT, CREATE, BEGIN, ...). ``status`` holds the last
    command-complete string, or None if the backend sent none.
    """
    fields: Tuple[FieldDescriptor, ...] = ()
    rows: List[Row] = field(default_factory=list)
    status: Optional[str] = None
    group_index: int = 1

    @property
    def column_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def has_rows(self) -> bool:
        return bool(self.fields)

    def decoded_rows(self, encoding: str = "utf-8") -> List[Tuple[Optional[str], ...]]:
        """Rows with every non-null payload decoded as text"""
        return [
            tuple(None if value is None else value.decode(encoding, errors="replace")
                  for value in row)
            for row in self.rows
        ]
