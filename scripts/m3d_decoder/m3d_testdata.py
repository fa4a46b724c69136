"""Synthetic M3D/C3D byte builders used by the decoder tests."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import m3d_decoder as decoder

# Filler for fields the decoder must skip; any value has to be ignored.
JUNK = 0xA5


def _junk(size: int) -> bytes:
    return bytes([JUNK]) * size


@dataclass
class PolygonSpec:
    color: Tuple[int, int]
    corners: Sequence[Tuple[int, int]]
    num_corners: Optional[int] = None


@dataclass
class SolidSpec:
    positions: List[Tuple[int, int, int]] = field(default_factory=list)
    normals: List[Tuple[int, int, int, int]] = field(default_factory=list)
    polygons: List[PolygonSpec] = field(default_factory=list)
    coord_min: Tuple[int, int, int] = (0, 0, 0)
    coord_max: Tuple[int, int, int] = (256, 256, 256)
    version: int = decoder.C3D_VERSION


def encode_solid(spec: SolidSpec) -> bytes:
    out = bytearray()
    out += struct.pack(
        '<5I', spec.version, len(spec.positions), len(spec.normals),
        len(spec.polygons), 3 * len(spec.polygons),
    )
    out += struct.pack('<3i', *spec.coord_max)
    out += struct.pack('<3i', *spec.coord_min)
    out += _junk(decoder.SOLID_PARENT_BLOCK_SIZE + decoder.SOLID_PHYSICS_BLOCK_SIZE)

    for position in spec.positions:
        out += _junk(decoder.POSITION_META_SIZE)
        out += bytes(position)
        out += _junk(decoder.SORT_KEY_SIZE)

    for normal in spec.normals:
        out += struct.pack('<4b', *normal)
        out += _junk(decoder.SORT_KEY_SIZE)

    for polygon in spec.polygons:
        num_corners = polygon.num_corners
        if num_corners is None:
            num_corners = len(polygon.corners)
        out += struct.pack('<I', num_corners)
        out += _junk(decoder.SORT_KEY_SIZE)
        out += struct.pack('<2I', *polygon.color)
        out += _junk(decoder.POLYGON_FLAT_NORMAL_SIZE + decoder.POLYGON_CENTROID_SIZE)
        for pid, nid in polygon.corners:
            out += struct.pack('<2I', pid, nid)

    return bytes(out)


@dataclass
class WheelSpec:
    steering: int
    width: int = 256
    radius: int = 512
    solid: Optional[SolidSpec] = None


@dataclass
class ModelSpec:
    body: SolidSpec
    color: Tuple[int, int] = (0, 0)
    wheels: List[WheelSpec] = field(default_factory=list)
    debris: List[Tuple[SolidSpec, SolidSpec]] = field(default_factory=list)


def encode_model(spec: ModelSpec) -> bytes:
    out = bytearray(encode_solid(spec.body))
    out += struct.pack('<3I', 0x11, 0x22, 0x33)
    out += struct.pack('<I', 0x44)
    out += struct.pack('<2I', len(spec.wheels), len(spec.debris))
    out += struct.pack('<2I', *spec.color)

    for wheel in spec.wheels:
        out += struct.pack('<I', wheel.steering)
        out += _junk(24)  # wheel transform f64[3]
        out += struct.pack('<3I', wheel.width, wheel.radius, 7)
        if wheel.steering != 0:
            out += encode_solid(wheel.solid or SolidSpec())

    for visible, bound in spec.debris:
        out += encode_solid(visible)
        out += encode_solid(bound)

    return bytes(out)


def triangle_solid(color: Tuple[int, int] = (1, 2), offset: int = 0) -> SolidSpec:
    """A single non-degenerate triangle; *offset* shifts the quantized positions."""
    return SolidSpec(
        positions=[(offset, 0, 0), (offset + 10, 0, 0), (offset, 10, 0)],
        normals=[(0, 0, 127, 0)],
        polygons=[PolygonSpec(color=color, corners=[(0, 0), (1, 0), (2, 0)])],
    )


def degenerate_solid() -> SolidSpec:
    """One position, one normal, one triangle referencing index 0 three times."""
    return SolidSpec(
        positions=[(1, 2, 3)],
        normals=[(0, 127, 0, 0)],
        polygons=[PolygonSpec(color=(5, 6), corners=[(0, 0), (0, 0), (0, 0)])],
    )
