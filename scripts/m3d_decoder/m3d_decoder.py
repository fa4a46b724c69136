"""
m3d_decoder.py
==============

Pure Python decoder for Vangers M3D vehicle models.

An M3D file is a sequence of C3D "solids" (self-contained quantized triangle
meshes) glued together by a small model header:

    body solid
    bounds, max radius, wheel/debris counts, model color
    per wheel: steering flag, legacy transform, width, radius, bound index,
               wheel solid (only when the steering flag is set)
    per debris: visible solid, physics bound solid

Positions are stored as one byte per axis and are dequantized against the
solid's own bounding box. Normals are signed bytes. Every polygon is expanded
into three corners, which are then sorted and deduplicated so that the mesh
can be uploaded as a plain (non-indexed) vertex buffer.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from m3d_reader import (
    ByteReader,
    IndexOutOfRange,
    M3dParseError,
    UnexpectedEof,
    UnsupportedPolygon,
    UnsupportedVersion,
)

__all__ = [
    "ByteReader",
    "Debris",
    "GpuVertex",
    "IndexOutOfRange",
    "M3dParseError",
    "Mesh",
    "Model",
    "RawSolid",
    "UnexpectedEof",
    "UnsupportedPolygon",
    "UnsupportedVersion",
    "VERTEX_DTYPE",
    "Wheel",
    "build_mesh",
    "decode_model",
    "decode_model_bytes",
    "decode_solid",
    "dedup_corners",
    "dequantize",
    "load_solid",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

C3D_VERSION = 8
FIXED_POINT_SCALE = 1.0 / 256.0
CORNERS_PER_POLYGON = 3

# parent offset i32[3] + max radius u32 + parent rotation u32[3]
SOLID_PARENT_BLOCK_SIZE = 12 + 4 + 12
# volume f64 + centre of mass f64[3] + inertia tensor f64[9]; real assets need all
# 104 bytes here, 96 misaligns every solid
SOLID_PHYSICS_BLOCK_SIZE = 8 * (1 + 3 + 9)

POSITION_META_SIZE = 3 * 4
SORT_KEY_SIZE = 4
POLYGON_FLAT_NORMAL_SIZE = 4
POLYGON_CENTROID_SIZE = 3

# wheel transform: f64[3]
WHEEL_TRANSFORM_SIZE = 3 * 8

# Renderer vertex layout (packed, little-endian).
VERTEX_DTYPE = np.dtype([
    ("pos", "<f4", (4,)),
    ("color", "<u4", (2,)),
    ("normal", "i1", (4,)),
])

_NORMAL = struct.Struct('<4b')

# (quantized position, quantized normal, color)
Corner = Tuple[bytes, bytes, Tuple[int, int]]
Vec3 = Tuple[float, float, float]

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GpuVertex:
    """Positions are Python floats; only to_vertex_array() narrows them to float32."""

    position: Tuple[float, float, float, float]
    normal: Tuple[int, int, int, int]
    color: Tuple[int, int]


@dataclass(frozen=True)
class Mesh:
    vertices: Tuple[GpuVertex, ...] = ()

    def __len__(self) -> int:
        return len(self.vertices)

    def __iter__(self) -> Iterator[GpuVertex]:
        return iter(self.vertices)

    def to_vertex_array(self) -> np.ndarray:
        """Pack the vertices into a VERTEX_DTYPE array ready for upload."""
        array = np.zeros(len(self.vertices), dtype=VERTEX_DTYPE)
        if self.vertices:
            array["pos"] = [v.position for v in self.vertices]
            array["color"] = [v.color for v in self.vertices]
            array["normal"] = [v.normal for v in self.vertices]
        return array


@dataclass(frozen=True)
class Wheel:
    mesh: Optional[Mesh]
    steering: int
    width: float
    radius: float


@dataclass(frozen=True)
class Debris:
    mesh: Mesh


@dataclass(frozen=True)
class Model:
    body: Mesh
    color: Tuple[int, int]
    wheels: Tuple[Wheel, ...]
    debris: Tuple[Debris, ...]


@dataclass
class RawSolid:
    coord_min: Vec3
    coord_max: Vec3
    corners: List[Corner]


# ---------------------------------------------------------------------------
# Geometry decoder
# ---------------------------------------------------------------------------


def _read_fixed_vec3(reader: ByteReader) -> Vec3:
    x, y, z = reader.read_i32s(3)
    return (x * FIXED_POINT_SCALE, y * FIXED_POINT_SCALE, z * FIXED_POINT_SCALE)


def decode_solid(reader: ByteReader) -> RawSolid:
    """Decode one C3D solid into its bounds and triangle corners.

    The reader is left positioned right after the solid, so consecutive
    solids can be decoded from the same stream.
    """
    version = reader.read_u32()
    if version != C3D_VERSION:
        raise UnsupportedVersion(version, C3D_VERSION)

    num_positions = reader.read_u32()
    num_normals = reader.read_u32()
    num_polygons = reader.read_u32()
    _total_verts = reader.read_u32()

    coord_max = _read_fixed_vec3(reader)
    coord_min = _read_fixed_vec3(reader)
    reader.skip(SOLID_PARENT_BLOCK_SIZE + SOLID_PHYSICS_BLOCK_SIZE)

    logging.debug("Reading %d positions...", num_positions)
    positions: List[bytes] = []
    for _ in range(num_positions):
        reader.skip(POSITION_META_SIZE)
        positions.append(reader.read_bytes(3))
        reader.skip(SORT_KEY_SIZE)

    logging.debug("Reading %d normals...", num_normals)
    normals: List[bytes] = []
    for _ in range(num_normals):
        normals.append(reader.read_bytes(4))
        reader.skip(SORT_KEY_SIZE)

    logging.debug("Reading %d polygons...", num_polygons)
    corners: List[Corner] = []
    for i in range(num_polygons):
        num_corners = reader.read_u32()
        if num_corners != CORNERS_PER_POLYGON:
            raise UnsupportedPolygon(i, num_corners)
        reader.skip(SORT_KEY_SIZE)
        color = reader.read_u32s(2)
        reader.skip(POLYGON_FLAT_NORMAL_SIZE + POLYGON_CENTROID_SIZE)
        for _ in range(CORNERS_PER_POLYGON):
            pid, nid = reader.read_u32s(2)
            if pid >= num_positions:
                raise IndexOutOfRange("position", pid, num_positions)
            if nid >= num_normals:
                raise IndexOutOfRange("normal", nid, num_normals)
            corners.append((positions[pid], normals[nid], color))

    return RawSolid(coord_min=coord_min, coord_max=coord_max, corners=corners)


# ---------------------------------------------------------------------------
# Vertex deduplication
# ---------------------------------------------------------------------------


def dedup_corners(corners: Sequence[Corner]) -> List[Corner]:
    """Sort corners by (position, normal, color) and drop exact duplicates."""
    return sorted(set(corners))


def dequantize(value: int, lo: float, hi: float) -> float:
    return lo + (value / 255.0) * (hi - lo)


def build_mesh(solid: RawSolid) -> Mesh:
    lo, hi = solid.coord_min, solid.coord_max
    vertices = []
    for position, normal, color in dedup_corners(solid.corners):
        vertices.append(GpuVertex(
            position=(
                dequantize(position[0], lo[0], hi[0]),
                dequantize(position[1], lo[1], hi[1]),
                dequantize(position[2], lo[2], hi[2]),
                1.0,
            ),
            normal=_NORMAL.unpack(normal),
            color=color,
        ))
    logging.debug("Got %d GPU vertices from %d corners", len(vertices), len(solid.corners))
    return Mesh(vertices=tuple(vertices))


def load_solid(reader: ByteReader) -> Mesh:
    return build_mesh(decode_solid(reader))


# ---------------------------------------------------------------------------
# Model assembly
# ---------------------------------------------------------------------------


def _read_wheel(reader: ByteReader) -> Wheel:
    steering = reader.read_u32()
    reader.skip(WHEEL_TRANSFORM_SIZE)
    width = reader.read_u32() * FIXED_POINT_SCALE
    radius = reader.read_u32() * FIXED_POINT_SCALE
    _bound_index = reader.read_u32()
    mesh = load_solid(reader) if steering != 0 else None
    return Wheel(mesh=mesh, steering=steering, width=width, radius=radius)


def decode_model(source: BinaryIO) -> Model:
    """Decode a complete M3D model from an open binary stream.

    Any structural error aborts the decode with an M3dParseError subclass;
    a partially decoded model is never returned.
    """
    reader = ByteReader(source)

    logging.debug("Reading the body...")
    body = load_solid(reader)

    _bounds = reader.read_u32s(3)
    _max_radius = reader.read_u32()
    num_wheels = reader.read_u32()
    num_debris = reader.read_u32()
    color = reader.read_u32s(2)

    logging.debug("Reading %d wheels...", num_wheels)
    wheels = [_read_wheel(reader) for _ in range(num_wheels)]

    logging.debug("Reading %d debris...", num_debris)
    debris = []
    for _ in range(num_debris):
        mesh = load_solid(reader)
        # Physics bound: decoded to stay aligned, not kept.
        decode_solid(reader)
        debris.append(Debris(mesh=mesh))

    logging.debug(
        "Decoded model: body=%d vertices, wheels=%d, debris=%d (%d bytes)",
        len(body), len(wheels), len(debris), reader.offset,
    )
    return Model(body=body, color=color, wheels=tuple(wheels), debris=tuple(debris))


def decode_model_bytes(data: bytes) -> Model:
    return decode_model(io.BytesIO(data))
