"""
m3d_reader.py
=============

Forward-only little-endian primitive reader and the parse error taxonomy
shared by the M3D/C3D decoder.

The reader wraps any binary source exposing ``read(n)`` (an open file,
``io.BytesIO``) and never seeks: the vehicle format has no offsets or
length prefixes, so every field has to be consumed in order.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Tuple


class M3dParseError(Exception):
    pass


class UnexpectedEof(M3dParseError):
    """Source ran out before the declared counts were satisfied."""

    def __init__(self, offset: int, needed: int, available: int) -> None:
        super().__init__(
            f"Unexpected end of data at offset {offset} "
            f"(need {needed} bytes, have {available})"
        )
        self.offset = offset
        self.needed = needed
        self.available = available


class UnsupportedVersion(M3dParseError):
    def __init__(self, version: int, expected: int) -> None:
        super().__init__(f"Unsupported C3D version: {version} (expected {expected})")
        self.version = version
        self.expected = expected


class UnsupportedPolygon(M3dParseError):
    def __init__(self, polygon: int, num_corners: int) -> None:
        super().__init__(
            f"Polygon {polygon} has {num_corners} corners, only triangles are supported"
        )
        self.polygon = polygon
        self.num_corners = num_corners


class IndexOutOfRange(M3dParseError):
    def __init__(self, kind: str, index: int, count: int) -> None:
        super().__init__(f"{kind.capitalize()} index {index} out of range (count={count})")
        self.kind = kind
        self.index = index
        self.count = count


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

_U32 = struct.Struct('<I')
_I32 = struct.Struct('<i')


class ByteReader:
    """Sequential reader over a binary stream, tracking the consumed offset."""

    def __init__(self, source: BinaryIO) -> None:
        self._source = source
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    def read_bytes(self, size: int) -> bytes:
        if size == 0:
            return b''
        data = self._source.read(size)
        if data is None or len(data) < size:
            raise UnexpectedEof(self._offset, size, len(data or b''))
        self._offset += size
        return bytes(data)

    def skip(self, size: int) -> None:
        """Consume ``size`` bytes whose content carries no meaning."""
        self.read_bytes(size)

    def read_u32(self) -> int:
        return _U32.unpack(self.read_bytes(4))[0]

    def read_i32(self) -> int:
        return _I32.unpack(self.read_bytes(4))[0]

    def read_u32s(self, count: int) -> Tuple[int, ...]:
        return struct.unpack(f'<{count}I', self.read_bytes(4 * count))

    def read_i32s(self, count: int) -> Tuple[int, ...]:
        return struct.unpack(f'<{count}i', self.read_bytes(4 * count))
