"""
Field metadata and tuple decoders

RowDescription ('T') body:
- Int16: field count n
- per field: String name, Int32 type oid, Int16 type length

Tuple ('D' text / 'B' binary) body for n fields:
- Byte[ceil(n/8)]: presence bitmap, MSB first, bit set = value present
- per present field: Int32 length, Byte[length] payload
  (text mode lengths count the 4 length bytes themselves)
"""

from typing import List, Optional, Tuple

from .models import FieldDescriptor, Row
from .stream import PGStream

MAX_FIELD_NAME = 8192


def receive_fields(stream: PGStream) -> Tuple[FieldDescriptor, ...]:
    """Decode the column descriptors of one result group"""
    count = stream.receive_integer(2)
    fields = []
    for _ in range(count):
        name = stream.receive_string(MAX_FIELD_NAME)
        type_oid = stream.receive_integer(4)
        type_length = stream.receive_integer(2)
        fields.append(FieldDescriptor(name, type_oid, type_length))
    return tuple(fields)


def bitmap_length(field_count: int) -> int:
    return (field_count + 7) // 8


def receive_tuple(stream: PGStream, field_count: int, binary: bool) -> Row:
    """Decode one row of ``field_count`` nullable payloads"""
    bitmap = stream.receive(bitmap_length(field_count))
    values: List[Optional[bytes]] = []

    for i in range(field_count):
        present = bitmap[i >> 3] & (0x80 >> (i & 7))
        if not present:
            values.append(None)
            continue
        length = stream.receive_integer(4)
        if not binary:
            length -= 4
        if length < 0:
            length = 0
        values.append(stream.receive(length))

    return tuple(values)
